"""
Custom exceptions for the ledger analysis pipeline.
"""
from typing import Any, Dict, Optional


class LedgerAnalyzerException(Exception):
    """Base exception for all ledger analysis errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ParseError(LedgerAnalyzerException):
    """Raised when a ledger or one of its entries is malformed."""
    pass


class UnsupportedFormatError(LedgerAnalyzerException):
    """Raised when no bank adapter recognizes the ledger."""
    pass


class InvalidSettingsError(LedgerAnalyzerException):
    """Raised when a settings bundle is malformed."""
    pass


class ValidationError(LedgerAnalyzerException):
    """Raised when user input fails validation."""
    pass


class ExportError(LedgerAnalyzerException):
    """Raised when Excel export fails."""
    pass


class ConfigurationError(LedgerAnalyzerException):
    """Raised when configuration is invalid."""
    pass


class StorageError(LedgerAnalyzerException):
    """Raised when the mapping store cannot be read or written."""
    pass
