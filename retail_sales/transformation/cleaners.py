"""
Data Cleaning Module

Cleaning stage for the raw sales export.
Handles:
- Text encoding detection with a configured fallback
- Header normalization
- Removal of characters the output encoding cannot represent
- Tolerant date parsing
- Currency and percentage normalization
- Quarantine of rows that fail to parse
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import io
import re

import chardet
import polars as pl
import structlog

from retail_sales.config import get_settings
from retail_sales.database.models import SOURCE_COLUMNS
from retail_sales.quality.validators import ValidationStatus, create_orders_validator

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS: List[str] = [
    "row_id",
    "order_id",
    "order_date",
    "ship_date",
    "customer_id",
    "product_id",
    "sales",
    "quantity",
    "discount",
    "profit",
]

DATE_COLUMNS: List[str] = ["order_date", "ship_date"]
AMOUNT_COLUMNS: List[str] = ["sales", "profit"]

# Characters each output encoding cannot carry
_UNREPRESENTABLE = {
    "ascii": r"[^\x20-\x7E]",
    "utf-8": r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F\x{FFFD}]",
}


@dataclass
class CleaningStats:
    """Statistics from cleaning operations"""
    total_rows: int
    rows_cleaned: int
    rows_quarantined: int
    dates_unparsed: int


@dataclass
class CleaningResult:
    """Result of cleaning one raw file"""
    input_path: str
    output_path: str
    source_encoding: str
    encoding_fallback: bool
    stats: CleaningStats
    quarantine_path: Optional[str] = None
    validation_status: Optional[ValidationStatus] = None


def normalize_header(name: str) -> str:
    """'  Sub-Category ' -> 'sub_category', 'Row ID' -> 'row_id'"""
    return re.sub(r"[^0-9a-z]+", "_", name.strip().lower()).strip("_")


class DataCleaner:
    """
    Cleaner for the raw sales export.

    Rows that cannot be parsed are never zeroed or silently dropped: they are
    split off with an `_error_message` and written to a quarantine file.
    Unparsable dates are the exception, they become NULL and the row is kept.

    Example:
        cleaner = DataCleaner()
        result = cleaner.clean_file("data/raw/superstore.csv")
    """

    def __init__(
        self,
        default_encoding: Optional[str] = None,
        output_encoding: Optional[str] = None,
        date_formats: Optional[List[str]] = None,
        enable_validation: bool = True,
    ):
        settings = get_settings()
        self.default_encoding = default_encoding or settings.cleaning.default_encoding
        self.output_encoding = (output_encoding or settings.cleaning.output_encoding).lower()
        self.date_formats = date_formats or settings.cleaning.date_formats
        self.sample_bytes = settings.cleaning.detection_sample_bytes
        self.min_confidence = settings.cleaning.min_detection_confidence
        self.enable_validation = enable_validation

        if self.output_encoding not in _UNREPRESENTABLE:
            raise ValueError(
                f"Unsupported output encoding: {self.output_encoding}. "
                f"Use one of: {list(_UNREPRESENTABLE)}"
            )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def detect_encoding(self, raw: bytes) -> Tuple[str, bool]:
        """
        Detect the text encoding of raw file content.

        Returns:
            (encoding, used_fallback)
        """
        detected = chardet.detect(raw[: self.sample_bytes])
        encoding = detected.get("encoding")
        confidence = detected.get("confidence") or 0.0

        if not encoding or confidence < self.min_confidence:
            logger.warning(
                "Encoding detection failed, using fallback",
                detected=encoding,
                confidence=confidence,
                fallback=self.default_encoding,
            )
            return self.default_encoding, True

        logger.debug("Encoding detected", encoding=encoding, confidence=confidence)
        return encoding, False

    def _decode(self, raw: bytes, encoding: str) -> Tuple[str, str, bool]:
        """Decode with the detected codec, falling back to the default one"""
        try:
            return raw.decode(encoding), encoding, False
        except (UnicodeDecodeError, LookupError) as e:
            logger.warning(
                "Decoding failed, using fallback",
                encoding=encoding,
                fallback=self.default_encoding,
                error=str(e),
            )
            return raw.decode(self.default_encoding, errors="replace"), self.default_encoding, True

    # ------------------------------------------------------------------
    # Column transformations
    # ------------------------------------------------------------------

    def _normalize_headers(self, df: pl.DataFrame) -> pl.DataFrame:
        """Trim and snake_case column names"""
        mapping: Dict[str, str] = {col: normalize_header(col) for col in df.columns}
        normalized = list(mapping.values())
        duplicates = sorted({c for c in normalized if normalized.count(c) > 1})
        if duplicates:
            raise ValueError(f"Columns collide after normalization: {duplicates}")
        return df.rename(mapping)

    def _conform_columns(self, df: pl.DataFrame) -> pl.DataFrame:
        """Require the key columns, add missing optional ones as NULL"""
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

        optional = [c for c in SOURCE_COLUMNS if c not in df.columns]
        if optional:
            logger.info("Adding empty optional columns", columns=optional)
            df = df.with_columns([pl.lit(None, dtype=pl.Utf8).alias(c) for c in optional])

        return df.select(SOURCE_COLUMNS)

    def _trim_strings(self, df: pl.DataFrame) -> pl.DataFrame:
        """Trim whitespace, strip unrepresentable characters, empty -> NULL"""
        pattern = _UNREPRESENTABLE[self.output_encoding]
        string_cols = [col for col, dtype in zip(df.columns, df.dtypes) if dtype == pl.Utf8]

        df = df.with_columns([
            pl.col(col).str.replace_all(pattern, "").str.strip_chars().alias(col)
            for col in string_cols
        ])
        return df.with_columns([
            pl.when(pl.col(col).str.len_chars() == 0)
            .then(None)
            .otherwise(pl.col(col))
            .alias(col)
            for col in string_cols
        ])

    def _parse_date(self, column: str) -> pl.Expr:
        """Try each configured format in order, NULL when none matches"""
        # Zero-pad single digit day/month so 11/8/2016 parses like 11/08/2016
        value = pl.col(column).str.replace_all(r"\b(\d)\b", "0${1}")
        candidates = []
        for fmt in self.date_formats:
            if "%H" in fmt:
                candidates.append(value.str.to_datetime(fmt, strict=False).dt.date())
            else:
                candidates.append(value.str.to_date(fmt, strict=False))
        return pl.coalesce(candidates).alias(column)

    @staticmethod
    def _finite(expr: pl.Expr) -> pl.Expr:
        return pl.when(expr.is_nan() | expr.is_infinite()).then(None).otherwise(expr)

    def _parse_amount(self, column: str) -> pl.Expr:
        """'$1,234.50' -> 1234.5, '(12.50)' -> -12.5"""
        value = pl.col(column).str.replace_all(r"[$€£¥,\s]", "")
        negative = value.str.starts_with("(") & value.str.ends_with(")")
        number = self._finite(value.str.strip_chars("()").cast(pl.Float64, strict=False))
        return pl.when(negative).then(-number).otherwise(number).round(2).alias(column)

    def _parse_discount(self, column: str = "discount") -> pl.Expr:
        """'10%' -> 0.1, '0.2' -> 0.2"""
        value = pl.col(column).str.replace_all(r"\s", "")
        is_percentage = value.str.ends_with("%")
        number = self._finite(value.str.replace_all("%", "").cast(pl.Float64, strict=False))
        return pl.when(is_percentage).then(number / 100).otherwise(number).round(2).alias(column)

    def _parse_integer(self, column: str) -> pl.Expr:
        """'1,200' and '3.0' parse, '3.5' does not"""
        number = self._finite(
            pl.col(column).str.replace_all(r"[,\s]", "").cast(pl.Float64, strict=False)
        )
        return (
            pl.when(number == number.floor())
            .then(number)
            .otherwise(None)
            .cast(pl.Int64)
            .alias(column)
        )

    def _error_messages(self) -> pl.Expr:
        """One message per failed check, joined, NULL/empty when the row is clean"""
        checks = [
            pl.when(pl.col(c).is_null()).then(pl.lit(f"invalid {c}"))
            for c in ["row_id", "sales", "quantity", "discount", "profit"]
        ]
        checks.append(
            pl.when(pl.col("ship_date") < pl.col("order_date"))
            .then(pl.lit("ship_date before order_date"))
        )
        return pl.concat_str(checks, separator="; ", ignore_nulls=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def clean(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, pl.DataFrame, CleaningStats]:
        """
        Clean a raw frame whose columns are all text.

        Returns:
            (cleaned, quarantined, stats). `cleaned` follows the orders
            schema column order; `quarantined` keeps the untrimmed raw text values
            plus an `_error_message` column.
        """
        df = self._normalize_headers(df)
        df = self._conform_columns(df)
        raw = self._trim_strings(df)

        parsed = raw.with_columns(
            [pl.col("row_id").cast(pl.Int64, strict=False)]
            + [self._parse_date(c) for c in DATE_COLUMNS]
            + [self._parse_amount(c) for c in AMOUNT_COLUMNS]
            + [self._parse_discount("discount"), self._parse_integer("quantity")]
        )

        dates_unparsed = sum(
            int((raw[c].is_not_null() & parsed[c].is_null()).sum())
            for c in DATE_COLUMNS
        )
        if dates_unparsed:
            logger.warning("Unparsable dates set to NULL", count=dates_unparsed)

        errors = parsed.select(self._error_messages().alias("_error_message")).to_series()
        failed = errors.fill_null("").str.len_chars() > 0

        quarantined = df.with_columns(errors).filter(failed)
        cleaned = parsed.filter(~failed)

        stats = CleaningStats(
            total_rows=len(raw),
            rows_cleaned=len(cleaned),
            rows_quarantined=len(quarantined),
            dates_unparsed=dates_unparsed,
        )

        if stats.rows_quarantined:
            logger.warning(
                "Rows quarantined during cleaning",
                rows=stats.rows_quarantined,
                sample=quarantined["_error_message"].head(3).to_list(),
            )

        return cleaned, quarantined, stats

    def clean_file(
        self,
        input_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        quarantine_dir: Optional[Union[str, Path]] = None,
    ) -> CleaningResult:
        """
        Clean a raw CSV file and write the cleaned CSV.

        Args:
            input_path: Raw delimited file of unknown encoding
            output_path: Cleaned CSV, defaults to the staging zone
            quarantine_dir: Where rejected rows go, defaults to the quarantine zone

        Returns:
            CleaningResult
        """
        settings = get_settings()
        input_path = Path(input_path)
        output_path = Path(
            output_path or Path(settings.data_lake.staging_path) / settings.data_lake.cleaned_file
        )
        quarantine_dir = Path(quarantine_dir or settings.data_lake.quarantine_path)

        if not input_path.exists():
            raise FileNotFoundError(f"File not found: {input_path}")

        logger.info("Starting cleaning", file=str(input_path))

        raw_bytes = input_path.read_bytes()
        encoding, fallback = self.detect_encoding(raw_bytes)
        text, encoding, decode_fallback = self._decode(raw_bytes, encoding)

        df = pl.read_csv(
            io.BytesIO(text.encode("utf-8")),
            separator=",",
            quote_char='"',
            infer_schema_length=0,
        )

        cleaned, quarantined, stats = self.clean(df)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        cleaned.write_csv(output_path, float_precision=2, date_format="%Y-%m-%d")

        result = CleaningResult(
            input_path=str(input_path),
            output_path=str(output_path),
            source_encoding=encoding,
            encoding_fallback=fallback or decode_fallback,
            stats=stats,
        )

        if len(quarantined):
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            quarantine_dir.mkdir(parents=True, exist_ok=True)
            quarantine_file = quarantine_dir / f"{input_path.stem}_cleaning_{timestamp}.parquet"
            quarantined.write_parquet(quarantine_file)
            result.quarantine_path = str(quarantine_file)

        if self.enable_validation:
            result.validation_status = create_orders_validator().validate(cleaned).status

        logger.info(
            "Cleaning completed",
            output=str(output_path),
            encoding=encoding,
            total_rows=stats.total_rows,
            rows_cleaned=stats.rows_cleaned,
            rows_quarantined=stats.rows_quarantined,
            dates_unparsed=stats.dates_unparsed,
        )

        return result


def clean_file(
    input_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None,
) -> CleaningResult:
    """Convenience function to clean a raw file with configured defaults."""
    return DataCleaner().clean_file(input_path, output_path)
