"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult, ValidationStatus, create_orders_validator

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationStatus",
    "create_orders_validator",
]
