"""API Layer — FastAPI routes, request dependencies, and error handlers.

Invariants:
    - Routes never contain business logic (delegate to services/)
"""
