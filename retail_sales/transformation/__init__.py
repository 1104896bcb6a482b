"""
Data Transformation Module
"""
from .cleaners import CleaningResult, DataCleaner, clean_file
from .enrichers import derive_order_attributes

__all__ = [
    "CleaningResult",
    "DataCleaner",
    "clean_file",
    "derive_order_attributes",
]
