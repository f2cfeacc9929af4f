"""
Typed error taxonomy for the quote engine.
Configuration errors become per-offer issues; parameter errors are reported per field.
"""
from typing import Dict, Optional


class QuoteError(Exception):
    """Base class for every error raised by the quote engine."""

    code = "quote_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"code": self.code, "message": self.message, "field": self.field}


class InvalidParametersError(QuoteError):
    """Caller supplied missing, invalid or conflicting calculation inputs."""

    code = "invalid_parameters"

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None, field: Optional[str] = None):
        super().__init__(message, field=field)
        self.errors: Dict[str, str] = dict(errors or {})
        if field and field not in self.errors:
            self.errors[field] = message


class ConfigurationError(QuoteError):
    """Catalog data does not allow quoting (window, rate or term missing)."""

    code = "configuration_error"


class NoActiveWindowError(ConfigurationError):
    code = "no_active_window"


class NoActiveRatesError(ConfigurationError):
    code = "no_active_rates"


class MissingRateError(ConfigurationError):
    code = "missing_rate"


class TermNotOfferedError(ConfigurationError):
    code = "term_not_offered"


class InvalidTacError(ConfigurationError):
    code = "invalid_tac"


class CalculationError(QuoteError):
    """The daily coefficient could not be computed for the given inputs."""

    code = "calculation_error"
