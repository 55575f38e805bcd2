"""
Integration test for data/ingest.py using temporary CSV folders and a
mocked HTTP layer.

Verifies that company folders are located and parsed, column aliases are
normalised, the initial derivation runs, and every failure surfaces as a
``DatasetLoadError``.
"""

import os
import shutil
import sys
import tempfile
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from data.ingest import (
    DatasetLoadError,
    audit_dataset,
    build_dataset,
    fetch_financial_data,
    format_company_name,
    list_companies,
    load_financial_data,
)
from model.statements import apply_edit

# ---------------------------------------------------------------------------
# Mock data factories
# ---------------------------------------------------------------------------

INCOME_CSV = """Month,Revenue,Cost_of_Goods_Sold,Operating_Expenses,Gross_Profit,Operating_Income,Net_Income
Jan-2024, 1000 ,600,200,400,200,150
Feb-2024,1200,700,220,500,280,210
"""

CASHFLOW_CSV = """Month,Operating_Cash_Flow,Cash_From_Investing,Cash_From_Financing,Net_Cash_Flow,CapEx
Jan-2024,180,-50,0,130,50
Feb-2024,240,-80,-20,140,80
"""

BALANCE_CSV = """Month,Cash,AR,Equipment,AP,Debt,Equity,Total_Assets
Jan-2024,500,120,900,100,400,1020,1520
Feb-2024,640,n/a,950,110,380,1230,1720
"""


def _make_company(root: str, name: str = "redrock_holdings", prefix: str = "redrock",
                  skip: str | None = None) -> str:
    folder = os.path.join(root, name)
    os.makedirs(folder)
    files = {
        "income_statement.csv": INCOME_CSV,
        "cash_flow.csv": CASHFLOW_CSV,
        "balance_sheet.csv": BALANCE_CSV,
    }
    for suffix, text in files.items():
        if suffix == skip:
            continue
        with open(os.path.join(folder, f"{prefix}_{suffix}"), "w") as f:
            f.write(text)
    return folder


def _setup() -> str:
    return tempfile.mkdtemp(prefix="statements_")


def _teardown(root: str) -> None:
    shutil.rmtree(root, ignore_errors=True)


def _response(text: str, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.text = text
    resp.status_code = status
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_load_financial_data():
    root = _setup()
    try:
        _make_company(root)
        ds = load_financial_data("redrock_holdings", root)

        assert len(ds.income) == 2
        assert len(ds.cashflow) == 2
        assert len(ds.balance) == 2

        # values are trimmed strings until an engine reads them
        assert ds.income[0]["Revenue"] == "1000"
        assert ds.income[0]["Gross_Margin"] == pytest.approx(40.0)
        assert ds.income[1]["Revenue_Growth"] == pytest.approx(20.0)

        # aliases resolved at ingestion
        assert ds.cashflow[0]["Cash_From_Operations"] == "180"
        assert ds.cashflow[0]["Capex"] == "50"
        assert ds.balance[0]["Accounts_Receivable"] == "120"
        assert ds.balance[0]["Loans"] == "400"
        assert ds.balance[0]["Total_Debt"] == 500.0

        # unparseable cell reads as 0
        assert ds.balance[1]["Current_Assets"] == 640.0
    finally:
        _teardown(root)
    print("  PASS: load_financial_data")


def test_load_missing_company():
    root = _setup()
    try:
        with pytest.raises(DatasetLoadError, match="not found"):
            load_financial_data("ghost_company", root)
    finally:
        _teardown(root)
    print("  PASS: missing company raises")


def test_load_missing_statement_file():
    root = _setup()
    try:
        _make_company(root, skip="cash_flow.csv")
        with pytest.raises(DatasetLoadError, match="cash_flow.csv"):
            load_financial_data("redrock_holdings", root)
    finally:
        _teardown(root)
    print("  PASS: missing statement file raises")


def test_load_empty_file():
    root = _setup()
    try:
        folder = _make_company(root)
        with open(os.path.join(folder, "redrock_income_statement.csv"), "w"):
            pass
        with pytest.raises(DatasetLoadError, match="Could not parse"):
            load_financial_data("redrock_holdings", root)
    finally:
        _teardown(root)
    print("  PASS: empty file raises")


def test_audit_dataset():
    root = _setup()
    try:
        _make_company(root)
        issues = audit_dataset(load_financial_data("redrock_holdings", root))
    finally:
        _teardown(root)

    flagged = {(i.statement, i.row, i.column, i.value) for i in issues}
    assert ("balance", 1, "Accounts_Receivable", "n/a") in flagged
    assert all(i.month == "Feb-2024" for i in issues)
    print(f"  PASS: audit_dataset flagged {len(issues)} cells")


def test_build_dataset_from_rows():
    ds = build_dataset(
        [{"Month": "Jan", "Revenue": 10, "Gross_Profit": 4}],
        [],
        [{"Month": "Jan", "cash": "7", "Accounts Payable": "3"}],
    )
    assert ds.income[0]["Gross_Margin"] == pytest.approx(40.0)
    assert ds.balance[0]["Cash"] == "7"
    assert ds.balance[0]["Current_Liabilities"] == 3.0
    assert audit_dataset(ds) == []


def test_audit_after_recompute():
    """Formatted numbers are read in full once the dataset is recomputed."""
    ds = build_dataset(
        [{"Month": "Jan", "Revenue": "100", "Cost_of_Goods_Sold": "60", "Operating_Expenses": "20"}],
        [],
        [{"Month": "Jan", "Cash": "10", "AR": "$23,500", "Equipment": "1_000", "Loans": "n/a"}],
    )
    assert ds.balance[0]["Current_Assets"] == 10.0
    flagged = {i.column for i in audit_dataset(ds)}
    assert flagged == {"Accounts_Receivable", "Equipment", "Loans"}

    edited = apply_edit(ds, "income", 0, "Revenue", "120")
    assert edited.balance[0]["Current_Assets"] == 23510.0
    flagged = {i.column for i in audit_dataset(edited, recompute=True)}
    assert flagged == {"Loans"}
    print("  PASS: audit_dataset after recompute")


@patch("data.ingest.requests.get")
def test_fetch_financial_data(mock_get):
    bodies = {
        "income_statement.csv": INCOME_CSV,
        "cash_flow.csv": CASHFLOW_CSV,
        "balance_sheet.csv": BALANCE_CSV,
    }

    def _get(url, timeout):
        suffix = next(s for s in bodies if url.endswith(s))
        return _response(bodies[suffix])

    mock_get.side_effect = _get
    ds = fetch_financial_data("https://example.test/data/", "redrock_holdings", "redrock")

    urls = [c.args[0] for c in mock_get.call_args_list]
    assert urls == [
        "https://example.test/data/redrock_holdings/redrock_income_statement.csv",
        "https://example.test/data/redrock_holdings/redrock_cash_flow.csv",
        "https://example.test/data/redrock_holdings/redrock_balance_sheet.csv",
    ]
    assert len(ds.balance) == 2
    assert ds.cashflow[1]["Cash_From_Operations"] == "240"
    print("  PASS: fetch_financial_data")


@patch("data.ingest.requests.get")
def test_fetch_http_error(mock_get):
    mock_get.return_value = _response("", status=404)
    with pytest.raises(DatasetLoadError, match="Could not fetch"):
        fetch_financial_data("https://example.test", "redrock_holdings")

    mock_get.side_effect = requests.ConnectionError("refused")
    with pytest.raises(DatasetLoadError):
        fetch_financial_data("https://example.test", "redrock_holdings")
    print("  PASS: fetch errors raise DatasetLoadError")


def test_list_companies_and_names():
    root = _setup()
    try:
        _make_company(root, "pinelands_construction", "pinelands")
        _make_company(root, "redrock_holdings")
        assert list_companies(root) == ["pinelands_construction", "redrock_holdings"]
        assert list_companies(os.path.join(root, "missing")) == []
    finally:
        _teardown(root)

    assert format_company_name("redrock_holdings") == "Redrock Holdings"
    assert format_company_name("acme") == "Acme"
    print("  PASS: list_companies / format_company_name")


def test_bundled_datasets_load():
    for company in list_companies():
        ds = load_financial_data(company)
        assert ds.income and ds.cashflow and ds.balance
    print("  PASS: bundled datasets load")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import logging
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    tests = [
        ("load_financial_data", test_load_financial_data),
        ("missing company", test_load_missing_company),
        ("missing statement file", test_load_missing_statement_file),
        ("empty file", test_load_empty_file),
        ("audit_dataset", test_audit_dataset),
        ("build_dataset", test_build_dataset_from_rows),
        ("audit after recompute", test_audit_after_recompute),
        ("fetch_financial_data", test_fetch_financial_data),
        ("fetch errors", test_fetch_http_error),
        ("list_companies", test_list_companies_and_names),
        ("bundled datasets", test_bundled_datasets_load),
    ]

    print("=" * 60)
    print("  Running data ingestion tests")
    print("=" * 60)

    passed = 0
    failed = 0
    for name, test_fn in tests:
        print(f"\nTest: {name}")
        try:
            test_fn()
            passed += 1
        except Exception as e:
            print(f"  FAIL: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print(f"\n{'=' * 60}")
    print(f"  Results: {passed} passed, {failed} failed")
    print(f"{'=' * 60}")

    sys.exit(0 if failed == 0 else 1)
