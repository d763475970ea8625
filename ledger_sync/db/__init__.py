"""Database Package — declarative bases and session factories.

Invariants:
    - Server ledger tables and client local tables live on separate metadata
    - All sessions are async (AsyncSession)

Design Decisions:
    - asyncpg driver for the server ledger, aiosqlite for the client store
"""
