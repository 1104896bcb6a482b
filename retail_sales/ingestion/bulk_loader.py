"""
Bulk Data Loader

Loads the cleaned sales CSV into the orders relation.
Supports:
- Typed reading with type violations reported per row
- Constraint checks before insert (key, measures, date order)
- Dead-letter files for rejected rows
- Truncate-and-reload for exact reproducibility
- Audit of attempted vs. loaded counts
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, Union
import hashlib

import polars as pl
import structlog
from pydantic import BaseModel
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from retail_sales.config import get_settings
from retail_sales.database.connection import get_db
from retail_sales.database.models import Order, SOURCE_COLUMNS
from retail_sales.transformation.enrichers import derive_order_attributes

logger = structlog.get_logger(__name__)


class LoadStatus(str, Enum):
    """Bulk load status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


# Target polars type per loaded column; everything else stays text
COLUMN_TYPES: Dict[str, pl.DataType] = {
    "row_id": pl.Int64,
    "quantity": pl.Int64,
    "sales": pl.Float64,
    "discount": pl.Float64,
    "profit": pl.Float64,
}
DATE_COLUMNS: List[str] = ["order_date", "ship_date"]
DECIMAL_COLUMNS: List[str] = ["sales", "discount", "profit"]
CENT = Decimal("0.01")
NOT_NULL_COLUMNS: List[str] = [
    "row_id", "order_id", "customer_id", "product_id",
    "sales", "quantity", "discount", "profit",
]


@dataclass
class LoadConfig:
    """Configuration for loading one delimited file"""
    file_path: Union[str, Path]
    target_table: str = Order.__tablename__
    delimiter: str = ","
    quote_char: str = '"'
    skip_header: bool = True
    encoding: str = "utf8"
    chunk_size: int = 5000
    truncate: bool = True


class LoadResult(BaseModel):
    """Result of a bulk load operation"""
    file_path: str
    target_table: str
    status: LoadStatus
    rows_attempted: int = 0
    rows_loaded: int = 0
    rows_rejected: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None
    quarantine_path: Optional[str] = None


class BulkLoader:
    """
    Bulk loader for the orders relation.

    Every row of the file is either inserted or rejected with a reason;
    rows_attempted == rows_loaded + rows_rejected for any completed load.

    Example:
        loader = BulkLoader()
        result = await loader.load(LoadConfig(file_path="data/staging/superstore_clean.csv"))
    """

    def __init__(self, dead_letter_path: Optional[str] = None):
        settings = get_settings()
        self.dead_letter_path = Path(dead_letter_path or settings.data_lake.quarantine_path)

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for the audit trail"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: LoadConfig) -> pl.DataFrame:
        """Read every column as text; typing happens in _cast_types"""
        if config.skip_header:
            df = pl.read_csv(
                config.file_path,
                separator=config.delimiter,
                quote_char=config.quote_char,
                encoding=config.encoding,
                infer_schema_length=0,
            )
        else:
            df = pl.read_csv(
                config.file_path,
                separator=config.delimiter,
                quote_char=config.quote_char,
                encoding=config.encoding,
                has_header=False,
                new_columns=SOURCE_COLUMNS,
                infer_schema_length=0,
            )

        missing = [c for c in SOURCE_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Missing columns in {config.file_path}: {missing}")
        return df.select(SOURCE_COLUMNS)

    def _cast_types(self, raw: pl.DataFrame) -> pl.DataFrame:
        """
        Cast text columns to their table types.

        A value present in the file but lost by the cast is a type
        violation, recorded in the `_type_errors` column.
        """
        typed = raw.with_columns(
            [pl.col(c).cast(dtype, strict=False) for c, dtype in COLUMN_TYPES.items()]
            + [pl.col(c).str.to_date("%Y-%m-%d", strict=False) for c in DATE_COLUMNS]
        )

        lost = pl.DataFrame({
            c: raw[c].is_not_null() & typed[c].is_null()
            for c in list(COLUMN_TYPES) + DATE_COLUMNS
        })
        joined = pl.concat_str(
            [pl.when(pl.col(c)).then(pl.lit(f"type violation: {c}")) for c in lost.columns],
            separator="; ",
            ignore_nulls=True,
        )
        messages = lost.select(
            pl.when(joined.str.len_chars() > 0).then(joined).alias("_type_errors")
        ).to_series()
        return typed.with_columns(messages)

    def _row_errors(self, typed: pl.DataFrame, existing_ids: Set[int]) -> pl.Series:
        """Per-row rejection messages (type and constraint violations), empty when clean"""
        loaded = pl.Series(sorted(existing_ids), dtype=pl.Int64)
        checks = [pl.col("_type_errors")]
        checks += [
            pl.when(pl.col(c).is_null()).then(pl.lit(f"missing {c}"))
            for c in NOT_NULL_COLUMNS
        ]
        checks += [
            pl.when(pl.col("row_id").is_not_null() & ~pl.col("row_id").is_first_distinct())
            .then(pl.lit("duplicate row_id")),
            pl.when(pl.col("row_id").is_in(loaded))
            .then(pl.lit("row_id already loaded")),
            pl.when(pl.col("quantity") < 0).then(pl.lit("negative quantity")),
            pl.when((pl.col("discount") < 0) | (pl.col("discount") > 1))
            .then(pl.lit("discount outside [0, 1]")),
            pl.when(pl.col("ship_date") < pl.col("order_date"))
            .then(pl.lit("ship_date before order_date")),
        ]
        return typed.select(
            pl.concat_str(checks, separator="; ", ignore_nulls=True)
            .fill_null("")
            .alias("_error_message")
        ).to_series()

    async def _existing_row_ids(self, db: AsyncSession) -> Set[int]:
        result = await db.execute(select(Order.row_id))
        return set(result.scalars().all())

    def _write_to_dead_letter(
        self,
        df: pl.DataFrame,
        config: LoadConfig,
    ) -> Path:
        """Write rejected records (raw text + _error_message) to the dead letter zone"""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        file_name = Path(config.file_path).stem
        self.dead_letter_path.mkdir(parents=True, exist_ok=True)
        dead_letter_file = self.dead_letter_path / f"{file_name}_load_{timestamp}.parquet"

        df.with_columns(pl.lit(datetime.now(timezone.utc)).alias("_failed_at")).write_parquet(dead_letter_file)
        logger.warning(
            "Written rejected records to dead letter file",
            file=str(dead_letter_file),
            records=len(df),
        )
        return dead_letter_file

    async def _insert_to_database(
        self,
        db: AsyncSession,
        df: pl.DataFrame,
        chunk_size: int,
    ) -> int:
        """Insert accepted rows in chunks within the caller's session"""
        records = df.to_dicts()
        total_inserted = 0

        for record in records:
            for column in DECIMAL_COLUMNS:
                record[column] = Decimal(str(record[column])).quantize(CENT)

        for i in range(0, len(records), chunk_size):
            chunk = records[i:i + chunk_size]
            await db.execute(insert(Order), chunk)
            total_inserted += len(chunk)

        return total_inserted

    async def truncate_table(self) -> int:
        """Delete every row of the orders relation"""
        async with get_db() as db:
            result = await db.execute(delete(Order))
        logger.info("Truncated table", table=Order.__tablename__, rows=result.rowcount)
        return result.rowcount

    async def load(self, config: LoadConfig) -> LoadResult:
        """
        Load a cleaned CSV file into the orders relation.

        Truncation, insert and attribute derivation run in one transaction:
        a failure leaves the table as it was.

        Args:
            config: Load configuration

        Returns:
            LoadResult: Result of the load operation
        """
        file_path = Path(config.file_path)
        started_at = datetime.now(timezone.utc)

        result = LoadResult(
            file_path=str(file_path),
            target_table=config.target_table,
            status=LoadStatus.RUNNING,
            started_at=started_at,
        )

        logger.info(
            "Starting bulk load",
            file=str(file_path),
            target_table=config.target_table,
            truncate=config.truncate,
        )

        try:
            if config.target_table != Order.__tablename__:
                raise ValueError(f"Unknown target table: {config.target_table}")
            if not file_path.exists():
                raise FileNotFoundError(f"File not found: {file_path}")

            result.file_hash = self._compute_file_hash(file_path)

            raw = self._read_csv(config)
            result.rows_attempted = len(raw)
            logger.info(f"Read {result.rows_attempted} rows from file")

            typed = self._cast_types(raw)

            async with get_db() as db:
                if config.truncate:
                    truncated = await db.execute(delete(Order))
                    logger.info("Truncated table before load", rows=truncated.rowcount)
                    existing_ids: Set[int] = set()
                else:
                    existing_ids = await self._existing_row_ids(db)

                errors = self._row_errors(typed, existing_ids)
                rejected = errors.str.len_chars() > 0

                accepted = typed.filter(~rejected).select(SOURCE_COLUMNS)
                result.rows_loaded = await self._insert_to_database(db, accepted, config.chunk_size)
                await derive_order_attributes(db)

            result.rows_rejected = int(rejected.sum())
            if result.rows_rejected:
                dead_letter = self._write_to_dead_letter(
                    raw.with_columns(errors).filter(rejected),
                    config,
                )
                result.quarantine_path = str(dead_letter)
                result.status = LoadStatus.PARTIAL
            else:
                result.status = LoadStatus.COMPLETED

            result.completed_at = datetime.now(timezone.utc)
            result.load_duration_seconds = (result.completed_at - started_at).total_seconds()

            logger.info(
                "Bulk load completed",
                status=result.status.value,
                rows_attempted=result.rows_attempted,
                rows_loaded=result.rows_loaded,
                rows_rejected=result.rows_rejected,
                duration_seconds=result.load_duration_seconds,
            )

        except Exception as e:
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            result.rows_loaded = 0
            result.completed_at = datetime.now(timezone.utc)
            result.load_duration_seconds = (result.completed_at - started_at).total_seconds()

            logger.error(
                "Bulk load failed",
                error=str(e),
                error_type=type(e).__name__,
                file=str(file_path),
            )

        return result


def create_bulk_loader() -> BulkLoader:
    """Create a configured BulkLoader instance"""
    return BulkLoader(dead_letter_path=get_settings().data_lake.quarantine_path)
