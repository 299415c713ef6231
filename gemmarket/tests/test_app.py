import unittest

from fastapi.testclient import TestClient

from gemmarket.app import create_app
from gemmarket.config import Settings
from gemmarket.db import InMemoryDbClient
from gemmarket.moderation import transition_status
from gemmarket.security import create_access_token
from gemmarket.storage import InMemoryStorageClient
from gemmarket.types import GemStatus, Role
from gemmarket.users import register_user

SECRET = "test-secret"

SAPPHIRE = {
    "title": "Blue Sapphire",
    "description": "Cornflower blue, eye clean.",
    "gemType": "Sapphire",
    "carat": "2.5",
    "cut": "Oval",
    "color": "Blue",
    "origin": "Sri Lanka",
}


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        settings = Settings(auth_secret=SECRET, use_in_memory_backends=True)
        self.client = TestClient(
            create_app(settings, db=self.db, storage=self.storage)
        )
        self.seller = self._user("seller@example.com", Role.SELLER)
        self.other_seller = self._user("other@example.com", Role.SELLER)
        self.buyer = self._user("buyer@example.com", Role.BUYER)
        self.admin = self._user("admin@example.com", Role.ADMIN)

    def _user(self, email, role):
        return register_user(
            self.db, name=email.split("@")[0], email=email, password_hash="x", role=role
        )

    def _auth(self, user):
        token = create_access_token(user.user_id, SECRET)
        return {"Authorization": f"Bearer {token}"}

    def _create(self, user=None, **overrides):
        data = {**SAPPHIRE, **overrides}
        return self.client.post(
            "/api/gems", data=data, headers=self._auth(user or self.seller)
        )

    def test_root_banner(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])

    def test_create_forces_pending_status(self):
        response = self._create(status="approved")
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"]["status"], "pending")
        self.assertEqual(payload["data"]["seller"], self.seller.user_id)
        self.assertEqual(payload["data"]["listingType"], "portfolio")
        self.assertEqual(payload["data"]["carat"], 2.5)

    def test_create_with_files_records_assets(self):
        response = self.client.post(
            "/api/gems",
            data={**SAPPHIRE, "certificateType": "GIA"},
            files=[
                ("images", ("front.jpg", b"jpeg-bytes", "image/jpeg")),
                ("images", ("back.jpg", b"jpeg-bytes-2", "image/jpeg")),
                ("certificates", ("cert.pdf", b"%PDF", "application/pdf")),
            ],
            headers=self._auth(self.seller),
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(len(payload["data"]["images"]), 2)
        self.assertEqual(len(payload["data"]["certificates"]), 1)
        self.assertEqual(payload["data"]["certificates"][0]["certificateType"], "GIA")
        self.assertTrue(all(item["ok"] for item in payload["assets"]))
        self.assertEqual(len(self.storage.stored_objects), 3)

    def test_create_missing_required_field_persists_nothing(self):
        for field in ("title", "description", "gemType", "carat", "cut", "color", "origin"):
            data = {k: v for k, v in SAPPHIRE.items() if k != field}
            response = self.client.post(
                "/api/gems", data=data, headers=self._auth(self.seller)
            )
            self.assertEqual(response.status_code, 400, field)
            self.assertFalse(response.json()["success"])
        self.assertEqual(self.db.gems, {})

    def test_create_invalid_enum_is_rejected(self):
        response = self._create(gemType="Granite")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.gems, {})

    def test_create_requires_seller_or_collector(self):
        for user in (self.buyer, self.admin):
            response = self._create(user=user)
            self.assertEqual(response.status_code, 403)
        collector = self._user("collector@example.com", Role.COLLECTOR)
        self.assertEqual(self._create(user=collector).status_code, 201)

    def test_create_requires_token(self):
        response = self.client.post("/api/gems", data=SAPPHIRE)
        self.assertEqual(response.status_code, 401)
        response = self.client.post(
            "/api/gems", data=SAPPHIRE, headers={"Authorization": "Bearer nope"}
        )
        self.assertEqual(response.status_code, 401)

    def test_too_many_certificates_rejected(self):
        files = [("certificates", (f"c{i}.pdf", b"x", "application/pdf")) for i in range(6)]
        response = self.client.post(
            "/api/gems", data=SAPPHIRE, files=files, headers=self._auth(self.seller)
        )
        self.assertEqual(response.status_code, 400)

    def test_create_rejects_non_finite_numbers(self):
        for value in ("inf", "-inf", "nan", "1e999"):
            self.assertEqual(self._create(carat=value).status_code, 400, value)
            self.assertEqual(self._create(price=value).status_code, 400, value)
        self.assertEqual(self.db.gems, {})

    def test_too_many_images_rejected(self):
        files = [("images", (f"i{i}.jpg", b"x", "image/jpeg")) for i in range(11)]
        response = self.client.post(
            "/api/gems", data=SAPPHIRE, files=files, headers=self._auth(self.seller)
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.storage.stored_objects, {})
        self.assertEqual(self.db.gems, {})

    def test_oversized_file_rejected(self):
        settings = Settings(
            auth_secret=SECRET, use_in_memory_backends=True, max_upload_bytes=4
        )
        client = TestClient(create_app(settings, db=self.db, storage=self.storage))
        ok = client.post(
            "/api/gems",
            data=SAPPHIRE,
            files=[("images", ("a.jpg", b"1234", "image/jpeg"))],
            headers=self._auth(self.seller),
        )
        self.assertEqual(ok.status_code, 201)
        too_big = client.post(
            "/api/gems",
            data=SAPPHIRE,
            files=[("images", ("b.jpg", b"12345", "image/jpeg"))],
            headers=self._auth(self.seller),
        )
        self.assertEqual(too_big.status_code, 400)
        self.assertIn("b.jpg", too_big.json()["message"])
        self.assertEqual(len(self.db.gems), 1)
        self.assertEqual(len(self.storage.stored_objects), 1)

    def test_sapphire_scenario(self):
        created = self._create().json()["data"]

        approved = self.client.get("/api/gems/approved").json()
        self.assertEqual(approved["count"], 0)

        transition_status(self.db, created["id"], GemStatus.APPROVED)
        approved = self.client.get("/api/gems/approved").json()
        self.assertEqual([g["id"] for g in approved["data"]], [created["id"]])
        self.assertEqual(
            set(approved["data"][0]["seller"]), {"id", "name", "rating"}
        )

        in_range = self.client.get(
            "/api/gems/approved", params={"minCarat": 2, "maxCarat": 3}
        ).json()
        self.assertEqual(in_range["count"], 1)
        above = self.client.get("/api/gems/approved", params={"minCarat": 3}).json()
        self.assertEqual(above["count"], 0)
        origin = self.client.get("/api/gems/approved", params={"origin": "lanka"}).json()
        self.assertEqual(origin["count"], 1)

    def test_approved_rejects_bad_number(self):
        response = self.client.get("/api/gems/approved", params={"minCarat": "abc"})
        self.assertEqual(response.status_code, 400)

    def test_approved_rejects_non_finite_bounds(self):
        gem_id = self._create().json()["data"]["id"]
        transition_status(self.db, gem_id, GemStatus.APPROVED)
        for params in ({"minCarat": "nan"}, {"maxCarat": "inf"}, {"minCarat": "-inf"}):
            response = self.client.get("/api/gems/approved", params=params)
            self.assertEqual(response.status_code, 400, params)
            self.assertFalse(response.json()["success"])

    def test_get_gem_increments_views(self):
        gem_id = self._create().json()["data"]["id"]
        first = self.client.get(f"/api/gems/{gem_id}").json()["data"]
        second = self.client.get(f"/api/gems/{gem_id}").json()["data"]
        self.assertEqual(first["views"], 1)
        self.assertEqual(second["views"], 2)
        self.assertEqual(set(first["seller"]), {"id", "name", "email", "rating"})
        self.assertNotIn("passwordHash", first["seller"])

    def test_get_unknown_gem(self):
        response = self.client.get("/api/gems/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Gem not found")

    def test_my_gems(self):
        self._create()
        self._create(title="Second")
        self._create(user=self.other_seller)
        response = self.client.get("/api/gems/my-gems", headers=self._auth(self.seller))
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["count"], 2)
        self.assertEqual(payload["data"][0]["title"], "Second")
        buyer = self.client.get("/api/gems/my-gems", headers=self._auth(self.buyer))
        self.assertEqual(buyer.status_code, 403)

    def test_update_by_owner_and_admin(self):
        gem_id = self._create().json()["data"]["id"]
        response = self.client.put(
            f"/api/gems/{gem_id}",
            json={"price": 1200, "status": "approved"},
            headers=self._auth(self.seller),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["price"], 1200)
        self.assertEqual(response.json()["data"]["status"], "pending")

        response = self.client.put(
            f"/api/gems/{gem_id}",
            json={"color": "Royal Blue"},
            headers=self._auth(self.admin),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["color"], "Royal Blue")

    def test_update_by_stranger_is_forbidden(self):
        gem_id = self._create().json()["data"]["id"]
        before = self.db.get_gem(gem_id)
        response = self.client.put(
            f"/api/gems/{gem_id}",
            json={"title": "Stolen"},
            headers=self._auth(self.other_seller),
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.db.get_gem(gem_id), before)

    def test_update_revalidates(self):
        gem_id = self._create().json()["data"]["id"]
        response = self.client.put(
            f"/api/gems/{gem_id}", json={"carat": -1}, headers=self._auth(self.seller)
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.get_gem(gem_id).carat, 2.5)

    def test_update_rejects_non_finite_price(self):
        gem_id = self._create(price="100").json()["data"]["id"]
        response = self.client.put(
            f"/api/gems/{gem_id}",
            content=b'{"price": 1e999, "carat": 3}',
            headers={**self._auth(self.seller), "Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        stored = self.db.get_gem(gem_id)
        self.assertEqual(stored.price, 100)
        self.assertEqual(stored.carat, 2.5)

    def test_delete(self):
        gem_id = self._create().json()["data"]["id"]
        forbidden = self.client.delete(
            f"/api/gems/{gem_id}", headers=self._auth(self.other_seller)
        )
        self.assertEqual(forbidden.status_code, 403)
        self.assertIsNotNone(self.db.get_gem(gem_id))

        response = self.client.delete(
            f"/api/gems/{gem_id}", headers=self._auth(self.seller)
        )
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.db.get_gem(gem_id))
        missing = self.client.delete(
            f"/api/gems/{gem_id}", headers=self._auth(self.admin)
        )
        self.assertEqual(missing.status_code, 404)

    def test_watchlist(self):
        gem_id = self._create().json()["data"]["id"]
        headers = self._auth(self.buyer)
        first = self.client.post(f"/api/gems/{gem_id}/watch", headers=headers)
        self.assertEqual(first.status_code, 200)
        second = self.client.post(f"/api/gems/{gem_id}/watch", headers=headers)
        self.assertEqual(second.status_code, 400)
        self.assertEqual(self.db.get_gem(gem_id).watchers, [self.buyer.user_id])

        removed = self.client.delete(f"/api/gems/{gem_id}/watch", headers=headers)
        self.assertEqual(removed.status_code, 200)
        again = self.client.delete(f"/api/gems/{gem_id}/watch", headers=headers)
        self.assertEqual(again.status_code, 200)
        self.assertEqual(self.db.get_gem(gem_id).watchers, [])

        missing = self.client.post("/api/gems/nope/watch", headers=headers)
        self.assertEqual(missing.status_code, 404)

    def test_profile(self):
        response = self.client.get("/api/users/me", headers=self._auth(self.buyer))
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["email"], "buyer@example.com")
        self.assertNotIn("passwordHash", data)

    def test_update_profile(self):
        response = self.client.put(
            "/api/users/me",
            json={"name": " Buyer Two ", "bio": "Loves opals", "email": "x@example.com"},
            headers=self._auth(self.buyer),
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["name"], "Buyer Two")
        self.assertEqual(data["bio"], "Loves opals")
        self.assertEqual(data["email"], "buyer@example.com")
        self.assertEqual(self.db.get_user(self.buyer.user_id).name, "Buyer Two")

        response = self.client.put(
            "/api/users/me", json={"name": "  "}, headers=self._auth(self.buyer)
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.put("/api/users/me", json={"name": "Anon"})
        self.assertEqual(response.status_code, 401)

    def test_inactive_user_is_rejected(self):
        self.buyer.is_active = False
        self.db.save_user(self.buyer)
        response = self.client.get("/api/users/me", headers=self._auth(self.buyer))
        self.assertEqual(response.status_code, 401)


class ServerErrorTests(unittest.TestCase):
    def test_store_failure_returns_500(self):
        class BrokenDb(InMemoryDbClient):
            def list_gems(self, query):
                raise RuntimeError("connection lost")

        settings = Settings(auth_secret=SECRET, use_in_memory_backends=True)
        client = TestClient(
            create_app(settings, db=BrokenDb(), storage=InMemoryStorageClient()),
            raise_server_exceptions=False,
        )
        response = client.get("/api/gems/approved")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json(),
            {"success": False, "message": "Server error", "error": "connection lost"},
        )


if __name__ == "__main__":
    unittest.main()
