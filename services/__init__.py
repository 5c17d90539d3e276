"""
Service layer for business logic.

This package contains service classes that orchestrate the ledger
analysis pipeline (parsing, resolution, aggregation, subscription
detection) and manage the user's persisted mapping tables.
"""
