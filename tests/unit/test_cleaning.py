"""
Unit Tests - Cleaning Stage
"""
from datetime import date

import polars as pl
import pytest

from retail_sales.database.models import SOURCE_COLUMNS
from retail_sales.transformation import cleaners
from retail_sales.transformation.cleaners import DataCleaner, normalize_header
from tests.conftest import RAW_HEADERS, raw_row


class TestNormalizeHeader:
    """Tests for header normalization"""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Row ID", "row_id"),
            ("  Sub-Category ", "sub_category"),
            ("Order Date", "order_date"),
            ("sales", "sales"),
            ("Postal Code\t", "postal_code"),
        ],
    )
    def test_normalize_header(self, raw, expected):
        assert normalize_header(raw) == expected


class TestDataCleaner:
    """Tests for DataCleaner.clean"""

    def _by_row_id(self, df: pl.DataFrame, row_id: int) -> dict:
        return df.filter(pl.col("row_id") == row_id).to_dicts()[0]

    def test_currency_and_percentage_normalization(self, sample_raw_df):
        """'$1,234.50' / '$200.00' / '10%' -> 1234.50 / 200.00 / 0.10"""
        cleaned, _, _ = DataCleaner().clean(sample_raw_df)

        row = self._by_row_id(cleaned, 2)
        assert row["sales"] == pytest.approx(1234.50)
        assert row["profit"] == pytest.approx(200.00)
        assert row["discount"] == pytest.approx(0.10)

    def test_accounting_negative_and_plain_fraction(self, sample_raw_df):
        cleaned, _, _ = DataCleaner().clean(sample_raw_df)

        assert self._by_row_id(cleaned, 3)["profit"] == pytest.approx(-12.50)
        assert self._by_row_id(cleaned, 4)["discount"] == pytest.approx(0.20)

    def test_dates_parsed_to_iso(self, sample_raw_df):
        cleaned, _, _ = DataCleaner().clean(sample_raw_df)

        assert cleaned["order_date"].dtype == pl.Date
        row = self._by_row_id(cleaned, 1)
        assert row["order_date"] == date(2016, 11, 8)
        assert row["ship_date"] == date(2016, 11, 11)

        # Date-time value keeps only the date part
        assert self._by_row_id(cleaned, 3)["ship_date"] == date(2016, 6, 16)

    def test_unparsable_date_becomes_null_and_row_is_kept(self, sample_raw_df):
        cleaned, _, stats = DataCleaner().clean(sample_raw_df)

        row = self._by_row_id(cleaned, 4)
        assert row["order_date"] is None
        assert row["ship_date"] == date(2016, 11, 11)
        assert stats.dates_unparsed == 1

    def test_malformed_measure_is_quarantined_not_zeroed(self, sample_raw_df):
        cleaned, quarantined, _ = DataCleaner().clean(sample_raw_df)

        assert 5 not in cleaned["row_id"].to_list()
        row = quarantined.filter(pl.col("row_id") == "5").to_dicts()[0]
        assert row["sales"] == "N/A"
        assert "invalid sales" in row["_error_message"]

    def test_ship_before_order_is_quarantined(self, sample_raw_df):
        cleaned, quarantined, _ = DataCleaner().clean(sample_raw_df)

        assert 6 not in cleaned["row_id"].to_list()
        messages = quarantined.filter(pl.col("row_id") == "6")["_error_message"].to_list()
        assert messages == ["ship_date before order_date"]

    def test_quarantined_rows_keep_untrimmed_raw_text(self):
        df = pl.DataFrame(
            [raw_row(1), raw_row(2, **{"Product Name": "  Café Table  ", "Sales": "N/A"})],
            schema={h: pl.Utf8 for h in RAW_HEADERS},
        )

        cleaned, quarantined, _ = DataCleaner(output_encoding="ascii").clean(df)

        assert cleaned["row_id"].to_list() == [1]
        assert quarantined["product_name"].to_list() == ["  Café Table  "]

    def test_cleaned_rows_ship_on_or_after_order(self, sample_raw_df):
        cleaned, _, _ = DataCleaner().clean(sample_raw_df)

        dated = cleaned.drop_nulls(["order_date", "ship_date"])
        assert len(dated) > 0
        assert (dated["ship_date"] >= dated["order_date"]).all()

    def test_stats_account_for_every_row(self, sample_raw_df):
        cleaned, quarantined, stats = DataCleaner().clean(sample_raw_df)

        assert stats.total_rows == len(sample_raw_df)
        assert stats.rows_cleaned == len(cleaned) == 5
        assert stats.rows_quarantined == len(quarantined) == 2

    def test_unrepresentable_characters_removed(self, sample_raw_df):
        cleaned, _, _ = DataCleaner(output_encoding="ascii").clean(sample_raw_df)

        row = self._by_row_id(cleaned, 7)
        assert row["product_name"] == "Caf Table"
        assert row["customer_name"] == "Jos Mller"

    def test_utf8_output_keeps_accents(self, sample_raw_df):
        cleaned, _, _ = DataCleaner(output_encoding="utf-8").clean(sample_raw_df)

        assert self._by_row_id(cleaned, 7)["product_name"] == "Café Table"

    def test_output_follows_schema_columns(self, sample_raw_df):
        cleaned, _, _ = DataCleaner().clean(sample_raw_df)

        assert cleaned.columns == SOURCE_COLUMNS

    def test_missing_optional_columns_added(self, sample_raw_df):
        df = sample_raw_df.drop(["City", "State", "Postal Code"])

        cleaned, _, _ = DataCleaner().clean(df)

        assert cleaned["city"].null_count() == len(cleaned)

    def test_missing_required_column_raises(self, sample_raw_df):
        with pytest.raises(ValueError, match="profit"):
            DataCleaner().clean(sample_raw_df.drop("Profit"))

    def test_unsupported_output_encoding_raises(self):
        with pytest.raises(ValueError, match="Unsupported output encoding"):
            DataCleaner(output_encoding="utf-16")


class TestEncodingDetection:
    """Tests for encoding detection and fallback"""

    def test_fallback_when_detection_fails(self, monkeypatch):
        monkeypatch.setattr(cleaners.chardet, "detect", lambda raw: {"encoding": None, "confidence": 0.0})

        encoding, fallback = DataCleaner(default_encoding="latin-1").detect_encoding(b"\xff\xfe")

        assert encoding == "latin-1"
        assert fallback is True

    def test_fallback_when_confidence_is_low(self, monkeypatch):
        monkeypatch.setattr(cleaners.chardet, "detect", lambda raw: {"encoding": "utf-8", "confidence": 0.1})

        encoding, fallback = DataCleaner(default_encoding="cp1252").detect_encoding(b"abc")

        assert (encoding, fallback) == ("cp1252", True)

    def test_ascii_detected(self):
        encoding, fallback = DataCleaner().detect_encoding(b"Row ID,Sales\n1,$10.00\n" * 50)

        assert encoding.lower() == "ascii"
        assert fallback is False

    def test_wrong_detection_falls_back_on_decode_error(self, monkeypatch):
        monkeypatch.setattr(cleaners.chardet, "detect", lambda raw: {"encoding": "utf-8", "confidence": 0.99})
        cleaner = DataCleaner(default_encoding="latin-1")

        encoding, fallback = cleaner.detect_encoding(b"caf\xe9")
        text, used, decode_fallback = cleaner._decode(b"caf\xe9", encoding)

        assert fallback is False
        assert decode_fallback is True
        assert used == "latin-1"
        assert text == "café"


class TestCleanFile:
    """Tests for the file-level cleaning stage"""

    def test_clean_file_writes_ascii_csv(self, tmp_path, raw_csv_file):
        output = tmp_path / "staging" / "clean.csv"

        result = DataCleaner().clean_file(raw_csv_file, output, quarantine_dir=tmp_path / "quarantine")

        content = output.read_bytes().decode("ascii")
        header = content.splitlines()[0]
        assert header == ",".join(SOURCE_COLUMNS)
        assert "1234.50" in content
        assert "0.10" in content
        assert "2016-11-08" in content
        assert result.stats.rows_cleaned == 5

    def test_clean_file_quarantines_bad_rows(self, tmp_path, raw_csv_file):
        result = DataCleaner().clean_file(
            raw_csv_file, tmp_path / "clean.csv", quarantine_dir=tmp_path / "quarantine"
        )

        assert result.quarantine_path is not None
        quarantined = pl.read_parquet(result.quarantine_path)
        assert sorted(quarantined["row_id"].to_list()) == ["5", "6"]
        assert "_error_message" in quarantined.columns

    def test_clean_file_missing_input(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DataCleaner().clean_file(tmp_path / "missing.csv", tmp_path / "out.csv")

    def test_cleaned_file_round_trips_through_reader(self, tmp_path, raw_csv_file):
        output = tmp_path / "clean.csv"
        DataCleaner().clean_file(raw_csv_file, output, quarantine_dir=tmp_path / "q")

        reread = pl.read_csv(output, infer_schema_length=0)
        assert reread.filter(pl.col("row_id") == "4")["order_date"].to_list() == [None]
        assert reread.filter(pl.col("row_id") == "2")["sales"].to_list() == ["1234.50"]
