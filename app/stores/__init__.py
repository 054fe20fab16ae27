"""Data stores for persistence and caching.

Stores handle:
- base: the StoreBackend contract and the records it returns
- PostgreSQL: engine/session helpers and the SQLAlchemy backend
- memory: dict-backed backend for tests and local development
- Redis: tag facet cache with TTL

No business/ranking logic in stores - that belongs in services.
"""
