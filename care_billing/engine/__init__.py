"""Rate resolution, hours, day classification and summary engines."""
from care_billing.engine.calculator import calculate_invoice
from care_billing.engine.days import classify_day, normalize_holidays
from care_billing.engine.hours import calculate_hours
from care_billing.engine.rates import resolve_rate
from care_billing.engine.validator import validate_create_request, validate_preview_request

__all__ = [
    "calculate_invoice",
    "classify_day",
    "normalize_holidays",
    "calculate_hours",
    "resolve_rate",
    "validate_create_request",
    "validate_preview_request",
]
