"""API Schemas — Pydantic models for the client/server wire protocol.

Invariants:
    - Wire field names are camelCase; Python attributes are snake_case
    - Request models reuse core validation so both hosts reject the same inputs
"""
