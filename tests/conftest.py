"""
Test Suite Configuration
"""
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List

import polars as pl
import pytest
from sqlalchemy import insert

from retail_sales.config import Settings
from retail_sales.database.connection import close_database, create_schema, get_db, init_database
from retail_sales.database.models import Order, SOURCE_COLUMNS
from retail_sales.transformation.enrichers import derive_order_attributes


RAW_HEADERS = [
    "Row ID", "Order ID", "Order Date", "Ship Date", "Ship Mode", "Customer ID",
    "Customer Name", "Segment", "Country", "City", "State", "Postal Code", "Region",
    "Product ID", "Category", "Sub-Category", "Product Name", "Sales", "Quantity",
    "Discount", "Profit",
]


def raw_row(row_id: int, **overrides: str) -> Dict[str, str]:
    """One raw export row, every value as text"""
    row = {
        "Row ID": str(row_id),
        "Order ID": f"CA-2016-{152155 + row_id}",
        "Order Date": "11/8/2016",
        "Ship Date": "11/11/2016",
        "Ship Mode": "Second Class",
        "Customer ID": "CG-12520",
        "Customer Name": "Claire Gute",
        "Segment": "Consumer",
        "Country": "United States",
        "City": "Henderson",
        "State": "Kentucky",
        "Postal Code": "42420",
        "Region": "South",
        "Product ID": f"FUR-BO-{10001798 + row_id}",
        "Category": "Furniture",
        "Sub-Category": "Bookcases",
        "Product Name": "Bush Somerset Collection Bookcase",
        "Sales": "$261.96",
        "Quantity": "2",
        "Discount": "0%",
        "Profit": "$41.91",
    }
    row.update(overrides)
    return row


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def sample_raw_df() -> pl.DataFrame:
    """Raw export as read from disk: original headers, all columns text"""
    rows = [
        raw_row(1),
        raw_row(2, **{"Sales": "$1,234.50", "Profit": "$200.00", "Discount": "10%"}),
        raw_row(3, **{"Order Date": "2016-06-12", "Ship Date": "2016-06-16 00:00:00", "Profit": "(12.50)"}),
        raw_row(4, **{"Order Date": "not a date", "Discount": "0.2"}),
        raw_row(5, **{"Sales": "N/A"}),
        raw_row(6, **{"Order Date": "11/20/2016", "Ship Date": "11/18/2016"}),
        raw_row(7, **{"Product Name": "  Café Table  ", "Customer Name": " José Müller "}),
    ]
    return pl.DataFrame(rows, schema={h: pl.Utf8 for h in RAW_HEADERS})


@pytest.fixture
def raw_csv_file(tmp_path: Path, sample_raw_df: pl.DataFrame) -> Path:
    """Raw export written in Windows-1252, as spreadsheet tools produce it"""
    path = tmp_path / "raw" / "superstore.csv"
    path.parent.mkdir(parents=True)
    path.write_bytes(sample_raw_df.write_csv().encode("cp1252"))
    return path


def write_cleaned_csv(path: Path, rows: List[Dict[str, Any]]) -> Path:
    """Write a cleaned-format CSV (schema columns, text values)"""
    frame = pl.DataFrame(
        [{c: (None if row.get(c) is None else str(row[c])) for c in SOURCE_COLUMNS} for row in rows],
        schema={c: pl.Utf8 for c in SOURCE_COLUMNS},
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.write_csv(path)
    return path


def cleaned_row(row_id: int, /, **overrides: Any) -> Dict[str, Any]:
    """One cleaned line item"""
    row = {
        "row_id": row_id,
        "order_id": f"CA-2016-{100 + row_id // 2}",
        "order_date": "2016-11-08",
        "ship_date": "2016-11-11",
        "ship_mode": "Second Class",
        "customer_id": f"CUST-{row_id % 3}",
        "customer_name": f"Customer {row_id % 3}",
        "segment": "Consumer",
        "country": "United States",
        "city": "Henderson",
        "state": "Kentucky",
        "postal_code": "42420",
        "region": "South" if row_id % 2 else "West",
        "product_id": f"PRD-{row_id % 4}",
        "category": "Furniture" if row_id % 2 else "Technology",
        "sub_category": "Chairs",
        "product_name": f"Product {row_id % 4}",
        "sales": f"{100 + row_id}.25",
        "quantity": "2",
        "discount": "0.10",
        "profit": f"{row_id * 3 - 10}.50",
    }
    row.update(overrides)
    return row


@pytest.fixture
def cleaned_csv_file(tmp_path: Path) -> Path:
    """Cleaned file with twelve valid line items"""
    return write_cleaned_csv(
        tmp_path / "staging" / "superstore_clean.csv",
        [cleaned_row(i) for i in range(1, 13)],
    )


@pytest.fixture
async def database(tmp_path: Path):
    """Initialize a throwaway SQLite database with the full schema"""
    engine = await init_database(f"sqlite+aiosqlite:///{tmp_path / 'retail_sales.db'}")
    await create_schema()
    yield engine
    await close_database()


@pytest.fixture
def order_factory() -> Callable[..., Dict[str, Any]]:
    """Build an orders-table record with sensible defaults"""
    def make(row_id: int, **overrides: Any) -> Dict[str, Any]:
        record = {
            "row_id": row_id,
            "order_id": f"ORD-{row_id}",
            "order_date": date(2015, 1, 10),
            "ship_date": date(2015, 1, 14),
            "ship_mode": "Standard Class",
            "customer_id": "CG-12520",
            "customer_name": "Claire Gute",
            "segment": "Consumer",
            "country": "United States",
            "city": "Henderson",
            "state": "Kentucky",
            "postal_code": "42420",
            "region": "South",
            "product_id": f"PRD-{row_id}",
            "category": "Furniture",
            "sub_category": "Chairs",
            "product_name": f"Product {row_id}",
            "sales": Decimal("100.00"),
            "quantity": 1,
            "discount": Decimal("0.00"),
            "profit": Decimal("10.00"),
        }
        record.update(overrides)
        return record

    return make


@pytest.fixture
def seed_orders(database) -> Callable:
    """Insert records straight into the orders table and derive attributes"""
    async def seed(records: List[Dict[str, Any]]) -> None:
        async with get_db() as db:
            await db.execute(insert(Order), records)
            await derive_order_attributes(db)

    return seed
