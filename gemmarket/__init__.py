"""
Gem listing service for the marketplace API.

This package provides a FastAPI application for creating, browsing and
managing gemstone listings, with record store and asset storage
abstractions so it can run against Postgres/S3 or fully in memory.
"""
