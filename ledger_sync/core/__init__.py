"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are pure and deterministic (clock values are passed in)

Design Decisions:
    - Functional core separated from imperative shell: the same guards run on
      the client store and on the server executor (ADR: one rulebook, two hosts)
"""
