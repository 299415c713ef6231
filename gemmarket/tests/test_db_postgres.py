import unittest

from gemmarket.db import (
    AuctionRecord,
    GemAsset,
    GemFilter,
    GemRecord,
    PostgresDbClient,
    UserRecord,
)
from gemmarket.errors import ConflictError
from gemmarket.types import CertificateType, Cut, GemStatus, GemType, ListingType, Role


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def tearDown(self):
        self.db.close()

    def _gem(self, **overrides):
        values = dict(
            title="Emerald",
            description="Colombian",
            gem_type=GemType.EMERALD,
            carat=2.0,
            cut=Cut.EMERALD,
            color="Green",
            origin="Colombia",
            seller_id="seller-1",
        )
        values.update(overrides)
        return GemRecord(**values)

    def test_user_email_is_case_insensitive_unique(self):
        user = self.db.create_user(
            UserRecord(name="Ann", email=" Ann@Example.COM ", password_hash="h", role=Role.SELLER)
        )
        self.assertEqual(user.email, "ann@example.com")
        fetched = self.db.get_user_by_email("ANN@example.com")
        self.assertEqual(fetched.user_id, user.user_id)
        self.assertEqual(fetched.role, Role.SELLER)
        with self.assertRaises(ConflictError):
            self.db.create_user(
                UserRecord(name="Other", email="ann@example.COM", password_hash="h")
            )

    def test_get_users(self):
        a = self.db.create_user(UserRecord(name="A", email="a@example.com", password_hash="h"))
        b = self.db.create_user(UserRecord(name="B", email="b@example.com", password_hash="h"))
        users = self.db.get_users([a.user_id, b.user_id, a.user_id, "missing"])
        self.assertEqual(set(users), {a.user_id, b.user_id})
        self.assertEqual(self.db.get_users([]), {})

    def test_gem_roundtrip_with_assets(self):
        gem = self._gem(
            clarity=None,
            images=[GemAsset(url="https://cdn/a.jpg", public_id="a")],
            certificates=[
                GemAsset(
                    url="https://cdn/c.pdf",
                    public_id="c",
                    certificate_type=CertificateType.GIA,
                )
            ],
            price=10.5,
        )
        self.db.create_gem(gem)
        loaded = self.db.get_gem(gem.gem_id)
        self.assertEqual(loaded.images[0].url, "https://cdn/a.jpg")
        self.assertEqual(loaded.certificates[0].certificate_type, CertificateType.GIA)
        self.assertEqual(loaded.status, GemStatus.PENDING)
        self.assertEqual(loaded.price, 10.5)
        self.assertIsNone(self.db.get_gem("missing"))

    def test_save_gem_persists_views_and_watchers(self):
        gem = self.db.create_gem(self._gem())
        gem.views += 1
        gem.watchers.append("buyer-1")
        self.db.save_gem(gem)
        loaded = self.db.get_gem(gem.gem_id)
        self.assertEqual(loaded.views, 1)
        self.assertEqual(loaded.watchers, ["buyer-1"])

        loaded.watchers = []
        self.db.save_gem(loaded)
        self.assertEqual(self.db.get_gem(gem.gem_id).watchers, [])

    def test_list_gems_filters(self):
        self.db.create_gem(self._gem(title="a", carat=1.0, created_at=1))
        self.db.create_gem(
            self._gem(title="b", carat=2.0, status=GemStatus.APPROVED, created_at=2)
        )
        self.db.create_gem(
            self._gem(
                title="c",
                carat=3.0,
                status=GemStatus.APPROVED,
                origin="Zambia 50%_mine",
                listing_type=ListingType.AUCTION,
                created_at=3,
            )
        )

        def titles(**kwargs):
            return [g.title for g in self.db.list_gems(GemFilter(**kwargs))]

        self.assertEqual(titles(), ["c", "b", "a"])
        self.assertEqual(titles(status=GemStatus.APPROVED), ["c", "b"])
        self.assertEqual(titles(min_carat=2.0, max_carat=3.0), ["c", "b"])
        self.assertEqual(titles(origin="COLOMB"), ["b", "a"])
        self.assertEqual(titles(origin="50%_"), ["c"])
        self.assertEqual(titles(origin="%"), ["c"])
        self.assertEqual(titles(listing_type=ListingType.AUCTION), ["c"])
        self.assertEqual(titles(gem_type=GemType.RUBY), [])
        self.assertEqual(titles(seller_id="seller-2"), [])

    def test_auction_is_unique_per_gem_and_removed_with_gem(self):
        gem = self.db.create_gem(self._gem(listing_type=ListingType.AUCTION))
        auction = self.db.create_auction(
            AuctionRecord(
                gem_id=gem.gem_id,
                seller_id=gem.seller_id,
                start_price=500,
                start_time=100,
                end_time=200,
            )
        )
        self.assertEqual(self.db.get_auction_for_gem(gem.gem_id).auction_id, auction.auction_id)
        with self.assertRaises(ConflictError):
            self.db.create_auction(
                AuctionRecord(
                    gem_id=gem.gem_id,
                    seller_id=gem.seller_id,
                    start_price=1,
                    start_time=100,
                    end_time=200,
                )
            )
        self.assertTrue(self.db.delete_gem(gem.gem_id))
        self.assertIsNone(self.db.get_auction_for_gem(gem.gem_id))
        self.assertFalse(self.db.delete_gem(gem.gem_id))


if __name__ == "__main__":
    unittest.main()
