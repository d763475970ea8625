"""Infrastructure Layer — databases, HTTP, auth, and cross-cutting concerns.

Invariants:
    - Infrastructure never makes domain decisions; it only stores, transports, and maps errors
    - All external calls carry a timeout and map failures into core/errors.py types

Design Decisions:
    - Thin wrappers over SQLAlchemy and httpx (ADR: single responsibility)
"""
