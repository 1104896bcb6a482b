"""
Unit Tests - Command Line
"""
import pytest

from retail_sales.main import build_parser, main


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run commands from a scratch directory so the data zones land there"""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_rejects_unknown_query():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["analyze", "--query", "nope"])


def test_clean_load_export(workdir, raw_csv_file, capsys):
    database_url = f"sqlite+aiosqlite:///{workdir / 'cli.db'}"
    cleaned = workdir / "staging" / "clean.csv"

    assert main(["clean", str(raw_csv_file), "--output", str(cleaned)]) == 0
    assert "Cleaned 5/7 rows" in capsys.readouterr().out

    assert main(["--database-url", database_url, "load", str(cleaned)]) == 0
    assert "Load completed: 5/5 rows loaded" in capsys.readouterr().out

    assert main(["--database-url", database_url, "export", "--output-dir", str(workdir / "reports")]) == 0
    assert sorted(p.name for p in (workdir / "reports").iterdir()) == [
        "customer_segments.csv",
        "loss_making_products.csv",
        "monthly_trend.csv",
        "region_category_summary.csv",
        "top_products.csv",
    ]

    assert main(["--database-url", database_url, "analyze", "--customer", "CG-12520"]) == 0
    assert "orders for customer CG-12520" in capsys.readouterr().out


def test_missing_input_returns_error(workdir, capsys):
    assert main(["clean", str(workdir / "missing.csv")]) == 1
    assert "Error" in capsys.readouterr().err


def test_load_failure_returns_error(workdir, capsys):
    database_url = f"sqlite+aiosqlite:///{workdir / 'cli.db'}"

    assert main(["--database-url", database_url, "load", str(workdir / "missing.csv")]) == 1
    assert "File not found" in capsys.readouterr().err


def test_empty_raw_file_returns_error(workdir, capsys):
    empty = workdir / "empty.csv"
    empty.write_bytes(b"")

    assert main(["clean", str(empty), "--output", str(workdir / "clean.csv")]) == 1
    assert "Error" in capsys.readouterr().err


def test_unreachable_database_returns_error(workdir, capsys):
    database_url = f"sqlite+aiosqlite:///{workdir / 'no' / 'such' / 'dir' / 'cli.db'}"

    assert main(["--database-url", database_url, "analyze"]) == 1
    assert "Error" in capsys.readouterr().err
