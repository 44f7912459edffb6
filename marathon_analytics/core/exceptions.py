"""
Custom exception classes.

Invalid activity records are dropped by the normalizer and never raised.
These exceptions cover invalid caller-supplied configuration and
documents that cannot be parsed at all.
"""
from typing import Optional


class AnalyticsError(Exception):
    """Base analytics exception with consistent structure."""

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code or "ANALYTICS_ERROR"


class ValidationError(AnalyticsError):
    """Invalid argument or profile value."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(detail=detail, error_code=error_code)
        self.field = field


class ParseError(AnalyticsError):
    """Activity document (GPX, TCX, CSV) could not be parsed."""

    def __init__(self, detail: str, source: Optional[str] = None):
        error_code = f"PARSE_ERROR_{source.upper()}" if source else "PARSE_ERROR"
        super().__init__(detail=detail, error_code=error_code)
        self.source = source
