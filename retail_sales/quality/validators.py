"""
Data Validation Module

Rule-based data quality checks for the cleaned orders frame.

Features:
- Null checks
- Uniqueness checks
- Range/boundary checks
- Column ordering checks (ship_date >= order_date)
- Custom business rules
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Data validator with a chainable check suite.

    Row-level checks are polars expressions that flag offending rows; a null
    flag (e.g. a comparison against a null date) never counts as a failure.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("row_id")
        validator.add_range_check("discount", min_value=0, max_value=1)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def _add_row_check(
        self,
        name: str,
        columns: Sequence[str],
        failing: Callable[[], pl.Expr],
        severity: ValidationSeverity,
        describe_failure: Callable[[int], str],
        success_message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> "DataValidator":
        def check(df: pl.DataFrame) -> ValidationCheck:
            for column in columns:
                if column not in df.columns:
                    return _missing_column(name, column, severity)

            total = len(df)
            failed = int(df.select(failing().sum()).item() or 0) if total else 0

            return ValidationCheck(
                name=name,
                passed=failed == 0,
                severity=severity,
                message=describe_failure(failed) if failed else success_message,
                details={
                    **(details or {}),
                    "failed_rows": failed,
                    "failed_percentage": round(failed / total * 100, 2) if total else 0.0,
                },
                failed_rows=failed,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        return self._add_row_check(
            f"not_null_{column}",
            [column],
            lambda: pl.col(column).is_null(),
            severity,
            lambda n: f"Column '{column}' has {n} null values",
            f"Column '{column}' has no null values",
        )

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add uniqueness check; every row sharing a duplicated value counts"""
        return self._add_row_check(
            f"unique_{column}",
            [column],
            lambda: pl.col(column).is_duplicated(),
            severity,
            lambda n: f"Column '{column}' has {n} rows with duplicated values",
            f"Column '{column}' values are unique",
        )

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within [min_value, max_value] (nulls are ignored)"""
        if min_value is None and max_value is None:
            raise ValueError(f"Range check on '{column}' needs min_value or max_value")

        def out_of_range() -> pl.Expr:
            bounds = []
            if min_value is not None:
                bounds.append(pl.col(column) < min_value)
            if max_value is not None:
                bounds.append(pl.col(column) > max_value)
            return pl.any_horizontal(bounds)

        return self._add_row_check(
            f"range_{column}",
            [column],
            out_of_range,
            severity,
            lambda n: f"Column '{column}' has {n} values outside [{min_value}, {max_value}]",
            "All values in range",
            details={"min": min_value, "max": max_value},
        )

    def add_column_order_check(
        self,
        earlier: str,
        later: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that `later` >= `earlier` wherever both are present"""
        return self._add_row_check(
            f"order_{earlier}_{later}",
            [earlier, later],
            lambda: pl.col(later) < pl.col(earlier),
            severity,
            lambda n: f"{n} rows have {later} before {earlier}",
            f"{later} never precedes {earlier}",
        )

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add a frame-level rule; an exception inside it counts as a failure"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
                message = "Check passed" if passed else message_on_fail
            except Exception as e:
                passed = False
                message = f"Check raised an error: {e}"
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=message,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        ERROR failures make the result FAILED, WARNING failures make it
        PARTIAL (FAILED in strict mode), INFO failures are only logged.
        """
        started_at = datetime.now(timezone.utc)
        logger.info("Running validation checks", checks=len(self._checks), rows=len(df))

        results = [check(df) for check in self._checks]
        for result in results:
            if not result.passed:
                logger.warning(
                    "Validation check failed",
                    check=result.name,
                    message=result.message,
                    severity=result.severity.value,
                )

        failures = Counter(r.severity for r in results if not r.passed)
        failed_checks = failures[ValidationSeverity.ERROR]
        warning_count = failures[ValidationSeverity.WARNING]

        if failed_checks or (warning_count and self.strict_mode):
            status = ValidationStatus.FAILED
        elif warning_count:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=sum(1 for r in results if r.passed),
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )

        logger.info(
            "Validation complete",
            status=status.value,
            passed=validation_result.passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )
        return validation_result


def create_orders_validator() -> DataValidator:
    """Create pre-configured validator for cleaned order line items"""
    validator = DataValidator().add_unique_check("row_id")
    for column in ("row_id", "order_id", "customer_id", "product_id", "sales", "profit", "discount", "quantity"):
        validator.add_not_null_check(column)
    return (
        validator
        .add_range_check("quantity", min_value=0)
        .add_range_check("discount", min_value=0, max_value=1)
        .add_column_order_check("order_date", "ship_date")
        .add_not_null_check("order_date", severity=ValidationSeverity.WARNING)
    )
