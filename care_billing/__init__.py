"""Invoice generation and billing-rate resolution for care staffing."""

__version__ = "1.0.0"
