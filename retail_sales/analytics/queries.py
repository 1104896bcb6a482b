"""
Analytics Queries

Fixed catalog of read-only aggregate queries over the orders relation.
Each query takes a session, has no side effects, and returns typed rows.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, Dict, List, Optional, Type

import structlog
from pydantic import BaseModel
from sqlalchemy import case, column, func, select, table
from sqlalchemy.ext.asyncio import AsyncSession

from retail_sales.config import get_settings
from retail_sales.database.models import Order, SUMMARY_VIEW_NAME

logger = structlog.get_logger(__name__)


class ProductProfit(BaseModel):
    """Product ranked by total profit"""
    profit_rank: int
    product_id: str
    product_name: Optional[str]
    total_profit: float


class MonthlyTrend(BaseModel):
    """Sales and profit for one calendar month"""
    order_year: int
    order_month: int
    month_name: str
    total_sales: float
    total_profit: float
    orders: int


class CustomerSegment(BaseModel):
    """Customer lifetime value classification"""
    customer_id: str
    customer_name: Optional[str]
    total_sales: float
    orders: int
    value_segment: str


class LossMakingProduct(BaseModel):
    """Product whose summed profit is negative"""
    product_name: Optional[str]
    category: Optional[str]
    total_profit: float


class RegionCategorySummary(BaseModel):
    """Row of the region x category summary view"""
    region: Optional[str]
    category: Optional[str]
    total_sales: float
    total_profit: float
    total_orders: int


class CustomerOrder(BaseModel):
    """One order of a customer, aggregated from its line items"""
    order_id: str
    order_date: Optional[date]
    ship_date: Optional[date]
    ship_mode: Optional[str]
    line_items: int
    quantity: int
    total_sales: float
    total_profit: float


def _money(value) -> float:
    return round(float(value or 0), 2)


async def top_products_by_profit(
    db: AsyncSession,
    limit: Optional[int] = None,
) -> List[ProductProfit]:
    """
    Top products by summed profit.

    RANK() gives equal profits the same rank; row order among them is by
    product_id so the cut at `limit` is deterministic.
    """
    limit = limit if limit is not None else get_settings().analytics.top_n
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")

    product_profit = (
        select(
            Order.product_id,
            func.min(Order.product_name).label("product_name"),
            func.sum(Order.profit).label("total_profit"),
        )
        .group_by(Order.product_id)
        .cte("product_profit")
    )
    stmt = (
        select(
            func.rank().over(order_by=product_profit.c.total_profit.desc()).label("profit_rank"),
            product_profit.c.product_id,
            product_profit.c.product_name,
            product_profit.c.total_profit,
        )
        .order_by(product_profit.c.total_profit.desc(), product_profit.c.product_id)
        .limit(limit)
    )

    result = await db.execute(stmt)
    return [
        ProductProfit(
            profit_rank=row.profit_rank,
            product_id=row.product_id,
            product_name=row.product_name,
            total_profit=_money(row.total_profit),
        )
        for row in result
    ]


async def monthly_sales_trend(db: AsyncSession) -> List[MonthlyTrend]:
    """Sales and profit per (year, month), in calendar order. Undated rows are skipped."""
    stmt = (
        select(
            Order.order_year,
            Order.order_month,
            func.sum(Order.sales).label("total_sales"),
            func.sum(Order.profit).label("total_profit"),
            func.count(func.distinct(Order.order_id)).label("orders"),
        )
        .where(Order.order_year.is_not(None), Order.order_month.is_not(None))
        .group_by(Order.order_year, Order.order_month)
        .order_by(Order.order_year, Order.order_month)
    )

    result = await db.execute(stmt)
    return [
        MonthlyTrend(
            order_year=row.order_year,
            order_month=row.order_month,
            month_name=calendar.month_name[row.order_month],
            total_sales=_money(row.total_sales),
            total_profit=_money(row.total_profit),
            orders=row.orders,
        )
        for row in result
    ]


async def customer_segments(
    db: AsyncSession,
    high_value_threshold: Optional[float] = None,
    mid_value_threshold: Optional[float] = None,
) -> List[CustomerSegment]:
    """
    Classify customers by lifetime sales.

    High-Value above the high threshold, Mid-Value above the mid threshold,
    Low-Value otherwise. Both bounds are exclusive.
    """
    settings = get_settings().analytics
    high = settings.high_value_threshold if high_value_threshold is None else high_value_threshold
    mid = settings.mid_value_threshold if mid_value_threshold is None else mid_value_threshold
    if mid > high:
        raise ValueError(f"mid_value_threshold ({mid}) exceeds high_value_threshold ({high})")

    # Compare cents, not the float sum some dialects return
    total_sales = func.round(func.sum(Order.sales), 2)
    stmt = (
        select(
            Order.customer_id,
            func.min(Order.customer_name).label("customer_name"),
            total_sales.label("total_sales"),
            func.count(func.distinct(Order.order_id)).label("orders"),
            case(
                (total_sales > high, "High-Value"),
                (total_sales > mid, "Mid-Value"),
                else_="Low-Value",
            ).label("value_segment"),
        )
        .group_by(Order.customer_id)
        .order_by(total_sales.desc(), Order.customer_id)
    )

    result = await db.execute(stmt)
    return [
        CustomerSegment(
            customer_id=row.customer_id,
            customer_name=row.customer_name,
            total_sales=_money(row.total_sales),
            orders=row.orders,
            value_segment=row.value_segment,
        )
        for row in result
    ]


async def loss_making_products(db: AsyncSession) -> List[LossMakingProduct]:
    """Products (per category) with negative summed profit, biggest loss first"""
    total_profit = func.sum(Order.profit)
    stmt = (
        select(
            Order.product_name,
            Order.category,
            total_profit.label("total_profit"),
        )
        .group_by(Order.product_name, Order.category)
        .having(total_profit < 0)
        .order_by(total_profit, Order.product_name)
    )

    result = await db.execute(stmt)
    return [
        LossMakingProduct(
            product_name=row.product_name,
            category=row.category,
            total_profit=_money(row.total_profit),
        )
        for row in result
    ]


summary_view = table(
    SUMMARY_VIEW_NAME,
    column("region"),
    column("category"),
    column("total_sales"),
    column("total_profit"),
    column("total_orders"),
)


async def region_category_summary(db: AsyncSession) -> List[RegionCategorySummary]:
    """Read the region x category summary view"""
    stmt = select(summary_view).order_by(summary_view.c.region, summary_view.c.category)

    result = await db.execute(stmt)
    return [
        RegionCategorySummary(
            region=row.region,
            category=row.category,
            total_sales=_money(row.total_sales),
            total_profit=_money(row.total_profit),
            total_orders=row.total_orders,
        )
        for row in result
    ]


async def customer_orders(db: AsyncSession, customer_id: str) -> List[CustomerOrder]:
    """
    Order-level detail for one customer.

    Raises:
        ValueError: If customer_id is empty
    """
    if not isinstance(customer_id, str) or not customer_id.strip():
        raise ValueError("customer_id must be a non-empty string")
    customer_id = customer_id.strip()

    line_items = (
        select(Order)
        .where(Order.customer_id == customer_id)
        .cte("customer_line_items")
    )
    stmt = (
        select(
            line_items.c.order_id,
            func.min(line_items.c.order_date).label("order_date"),
            func.max(line_items.c.ship_date).label("ship_date"),
            func.min(line_items.c.ship_mode).label("ship_mode"),
            func.count().label("line_items"),
            func.sum(line_items.c.quantity).label("quantity"),
            func.sum(line_items.c.sales).label("total_sales"),
            func.sum(line_items.c.profit).label("total_profit"),
        )
        .group_by(line_items.c.order_id)
        .order_by(func.min(line_items.c.order_date), line_items.c.order_id)
    )

    result = await db.execute(stmt)
    orders = [
        CustomerOrder(
            order_id=row.order_id,
            order_date=row.order_date,
            ship_date=row.ship_date,
            ship_mode=row.ship_mode,
            line_items=row.line_items,
            quantity=row.quantity,
            total_sales=_money(row.total_sales),
            total_profit=_money(row.total_profit),
        )
        for row in result
    ]
    logger.debug("Customer lookup", customer_id=customer_id, orders=len(orders))
    return orders


@dataclass(frozen=True)
class CatalogQuery:
    """A parameterless query of the catalog"""
    name: str
    description: str
    model: Type[BaseModel]
    run: Callable[[AsyncSession], Awaitable[List[BaseModel]]]


QUERY_CATALOG: Dict[str, CatalogQuery] = {
    entry.name: entry
    for entry in [
        CatalogQuery("top_products", "Top products by total profit", ProductProfit, top_products_by_profit),
        CatalogQuery("monthly_trend", "Monthly sales and profit", MonthlyTrend, monthly_sales_trend),
        CatalogQuery("customer_segments", "Customer value segmentation", CustomerSegment, customer_segments),
        CatalogQuery("loss_making_products", "Products with negative profit", LossMakingProduct, loss_making_products),
        CatalogQuery("region_category_summary", "Sales and profit by region and category", RegionCategorySummary, region_category_summary),
    ]
}


async def run_query(db: AsyncSession, name: str) -> List[BaseModel]:
    """Run a catalog query by name"""
    try:
        entry = QUERY_CATALOG[name]
    except KeyError:
        raise ValueError(f"Unknown query: {name}. Available: {sorted(QUERY_CATALOG)}") from None

    rows = await entry.run(db)
    logger.info("Query executed", query=name, rows=len(rows))
    return rows
