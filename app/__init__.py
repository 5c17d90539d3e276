"""
HTTP surface for the ledger analyzer.
"""
