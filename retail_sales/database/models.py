"""
Database Models - Flat Order Line Item Relation

One denormalized fact relation, `orders`, holds every line item of the
sales export. Analysis runs directly against it, plus:

- region_category_summary: virtual view of sales/profit by region and category
- get_customer_orders: SQL function returning one customer's line items
  (PostgreSQL only)
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Date,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class Order(Base):
    """
    Order Line Item

    One row per product within an order. `row_id` is carried over from the
    source file and is the stable identity of a line item.
    Derived columns stay NULL until derive_order_attributes() runs.
    """
    __tablename__ = "orders"

    row_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    # Grouping keys
    order_id: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # Dates (NULL when the source value was unparsable)
    order_date: Mapped[Optional[date]] = mapped_column(Date)
    ship_date: Mapped[Optional[date]] = mapped_column(Date)
    ship_mode: Mapped[Optional[str]] = mapped_column(String(50))

    # Customer
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    segment: Mapped[Optional[str]] = mapped_column(String(50))

    # Geographic
    country: Mapped[Optional[str]] = mapped_column(String(100))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    region: Mapped[Optional[str]] = mapped_column(String(50))

    # Product
    category: Mapped[Optional[str]] = mapped_column(String(100))
    sub_category: Mapped[Optional[str]] = mapped_column(String(100))
    product_name: Mapped[Optional[str]] = mapped_column(String(255))

    # Measures
    sales: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    profit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Derived post-load
    order_year: Mapped[Optional[int]] = mapped_column(Integer)
    order_month: Mapped[Optional[int]] = mapped_column(Integer)  # 1=January
    shipping_days: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_orders_customer_id", "customer_id"),
        Index("ix_orders_product_id", "product_id"),
        Index("ix_orders_year_month", "order_year", "order_month"),
    )


# Columns in file/table order, shared by the cleaning and load stages
ORDER_COLUMNS: List[str] = [column.name for column in Order.__table__.columns]
DERIVED_COLUMNS: List[str] = ["order_year", "order_month", "shipping_days"]
SOURCE_COLUMNS: List[str] = [c for c in ORDER_COLUMNS if c not in DERIVED_COLUMNS]
MEASURE_COLUMNS: List[str] = ["sales", "quantity", "discount", "profit"]


# =============================================================================
# VIEWS AND ROUTINES
# =============================================================================

SUMMARY_VIEW_NAME = "region_category_summary"

SUMMARY_VIEW_SQL = f"""
CREATE VIEW {SUMMARY_VIEW_NAME} AS
SELECT
    region,
    category,
    SUM(sales) AS total_sales,
    SUM(profit) AS total_profit,
    COUNT(DISTINCT order_id) AS total_orders
FROM orders
GROUP BY region, category
"""

CUSTOMER_ORDERS_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION get_customer_orders(p_customer_id TEXT)
RETURNS SETOF orders
LANGUAGE sql STABLE
AS $$
    SELECT * FROM orders
    WHERE customer_id = p_customer_id
    ORDER BY order_date, row_id
$$
"""
