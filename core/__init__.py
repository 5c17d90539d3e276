"""
Core processing modules for bank ledger analysis.

This package contains:
- aggregation: Monthly and per-business spending totals
- config: Application configuration and settings
- db: Persistence of the user's mapping tables
- exceptions: Custom exception classes
- exporters: Excel export functionality
- logger: Logging configuration
- matching: Merchant resolution and spending groups
- merchants: Merchant database loading
- normalize: Text, amount and date normalization
- parsing: Bank adapters and adapter registry
- schema: Pydantic models for the pipeline
- subscriptions: Recurring payment detection
"""
