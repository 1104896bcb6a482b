"""
Data Enrichment Module

Post-load derivation of calendar attributes on the orders relation:
- order_year and order_month (calendar month number, 1-12)
- shipping_days (ship_date - order_date)

This is the only mutation applied to loaded rows.
"""

from typing import Callable, Dict

import structlog
from sqlalchemy import Integer, cast, extract, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from retail_sales.database.models import Order

logger = structlog.get_logger(__name__)


# Date difference in days, per dialect
_SHIPPING_DAYS: Dict[str, Callable[[], ColumnElement]] = {
    "sqlite": lambda: cast(
        func.julianday(Order.ship_date) - func.julianday(Order.order_date), Integer
    ),
    "postgresql": lambda: Order.ship_date - Order.order_date,
    "mysql": lambda: func.datediff(Order.ship_date, Order.order_date),
}


def shipping_days_expression(dialect: str) -> ColumnElement:
    """Return the ship_date - order_date expression for a SQL dialect"""
    try:
        return _SHIPPING_DAYS[dialect]()
    except KeyError:
        raise ValueError(f"Unsupported dialect for shipping_days: {dialect}") from None


async def derive_order_attributes(db: AsyncSession) -> int:
    """
    Fill order_year, order_month and shipping_days from the date columns.

    Rows with NULL dates get NULL derived values. Running it again yields
    the same values.

    Args:
        db: Active session; the caller commits

    Returns:
        Number of rows updated
    """
    dialect = db.get_bind().dialect.name

    stmt = (
        update(Order)
        .values(
            order_year=cast(extract("year", Order.order_date), Integer),
            order_month=cast(extract("month", Order.order_date), Integer),
            shipping_days=shipping_days_expression(dialect),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    logger.info("Derived order attributes", rows=result.rowcount, dialect=dialect)
    return result.rowcount
