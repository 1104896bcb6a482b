"""
Data Ingestion Module
"""
from .bulk_loader import BulkLoader, LoadConfig, LoadResult, LoadStatus, create_bulk_loader

__all__ = ["BulkLoader", "LoadConfig", "LoadResult", "LoadStatus", "create_bulk_loader"]
