"""
Report Export

Writes every catalog query result as a CSV table to the curated zone,
where the report/dashboard tooling picks them up.
"""

from pathlib import Path
from typing import Dict, List, Optional, Type, Union

import polars as pl
import structlog
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from retail_sales.analytics.queries import QUERY_CATALOG
from retail_sales.config import get_settings

logger = structlog.get_logger(__name__)


def rows_to_frame(rows: List[BaseModel], model: Type[BaseModel]) -> pl.DataFrame:
    """Convert query rows to a DataFrame, keeping the columns when empty"""
    columns = list(model.model_fields)
    if not rows:
        return pl.DataFrame(schema={name: pl.Utf8 for name in columns})
    return pl.DataFrame([row.model_dump() for row in rows]).select(columns)


async def export_reports(
    db: AsyncSession,
    output_dir: Optional[Union[str, Path]] = None,
) -> Dict[str, Path]:
    """
    Run the whole query catalog and write one CSV per query.

    Args:
        db: Active session
        output_dir: Target directory, defaults to the curated zone

    Returns:
        Mapping of query name to written file
    """
    output_dir = Path(output_dir or get_settings().data_lake.curated_path)
    output_dir.mkdir(parents=True, exist_ok=True)

    written: Dict[str, Path] = {}
    for name, entry in QUERY_CATALOG.items():
        rows = await entry.run(db)
        path = output_dir / f"{name}.csv"
        rows_to_frame(rows, entry.model).write_csv(path, float_precision=2)
        written[name] = path
        logger.info("Report exported", query=name, rows=len(rows), file=str(path))

    return written
