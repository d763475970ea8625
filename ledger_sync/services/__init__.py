"""Services Layer — transfer execution (server) and sync orchestration (client).

Invariants:
    - Services combine core rules with infrastructure IO; they hold no module state
    - Collaborators are passed in through constructors

Design Decisions:
    - One service per responsibility: executor, coordinator, reconciliation view
"""
