"""
Analytics Module
"""
from .queries import (
    QUERY_CATALOG,
    customer_orders,
    customer_segments,
    loss_making_products,
    monthly_sales_trend,
    region_category_summary,
    run_query,
    top_products_by_profit,
)
from .reports import export_reports

__all__ = [
    "QUERY_CATALOG",
    "customer_orders",
    "customer_segments",
    "export_reports",
    "loss_making_products",
    "monthly_sales_trend",
    "region_category_summary",
    "run_query",
    "top_products_by_profit",
]
