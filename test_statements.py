"""
Tests for model/statements.py: initial derivation, edit-recompute and
the cross-statement reconciliation rules.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from model.statements import Dataset, apply_edit, derive_dataset, is_editable

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_dataset() -> Dataset:
    """Three months of raw, string-valued rows as ingestion produces them."""
    income = [
        {"Month": "Jan", "Revenue": "100", "Cost_of_Goods_Sold": "60", "Operating_Expenses": "20",
         "Gross_Profit": "40", "Operating_Income": "20", "Net_Income": "15"},
        {"Month": "Feb", "Revenue": "120", "Cost_of_Goods_Sold": "70", "Operating_Expenses": "25",
         "Gross_Profit": "50", "Operating_Income": "25", "Net_Income": "18"},
        {"Month": "Mar", "Revenue": "90", "Cost_of_Goods_Sold": "60", "Operating_Expenses": "22",
         "Gross_Profit": "30", "Operating_Income": "8", "Net_Income": "5"},
    ]
    cashflow = [
        {"Month": "Jan", "Cash_From_Operations": "16", "Cash_From_Investing": "-4",
         "Cash_From_Financing": "2", "Net_Cash_Flow": "14", "Capex": "4"},
        {"Month": "Feb", "Cash_From_Operations": "20", "Cash_From_Investing": "-6",
         "Cash_From_Financing": "-3", "Net_Cash_Flow": "11", "Capex": "6"},
        {"Month": "Mar", "Cash_From_Operations": "7", "Cash_From_Investing": "-2",
         "Cash_From_Financing": "0", "Net_Cash_Flow": "5", "Capex": "2"},
    ]
    balance = [
        {"Month": "Jan", "Cash": "50", "Accounts_Receivable": "10", "Equipment": "40",
         "Accounts_Payable": "20", "Loans": "5", "Equity": "75", "Total_Assets": "100"},
        {"Month": "Feb", "Cash": "61", "Accounts_Receivable": "12", "Equipment": "42",
         "Accounts_Payable": "22", "Loans": "5", "Equity": "88", "Total_Assets": "115"},
        {"Month": "Mar", "Cash": "66", "Accounts_Receivable": "9", "Equipment": "43",
         "Accounts_Payable": "21", "Loans": "5", "Equity": "92", "Total_Assets": "118"},
    ]
    return Dataset(income=income, cashflow=cashflow, balance=balance)


# ---------------------------------------------------------------------------
# Initial derivation
# ---------------------------------------------------------------------------


def test_income_margins_and_growth():
    ds = Dataset(income=[
        {"Month": "Jan", "Revenue": 100, "Gross_Profit": 40},
        {"Month": "Feb", "Revenue": 120, "Gross_Profit": 50},
        {"Month": "Mar", "Revenue": 90, "Gross_Profit": 30},
    ])
    income = derive_dataset(ds).income

    assert [r["Gross_Margin"] for r in income] == pytest.approx([40.0, 41.6666667, 33.3333333])
    assert [r["Revenue_Growth"] for r in income] == pytest.approx([0.0, 20.0, -25.0])
    assert income[0]["Net_Income_Growth"] == 0.0


def test_operating_margin_uses_gross_minus_opex():
    ds = Dataset(income=[{"Month": "Jan", "Revenue": "200", "Gross_Profit": "80",
                          "Operating_Expenses": "30", "Operating_Income": "999"}])
    row = derive_dataset(ds).income[0]
    assert row["Operating_Margin"] == pytest.approx(25.0)


def test_zero_revenue_margins_are_zero():
    ds = Dataset(income=[{"Month": "Jan", "Revenue": "0", "Gross_Profit": "10", "Net_Income": "-5"}])
    row = derive_dataset(ds).income[0]
    assert row["Gross_Margin"] == 0.0
    assert row["Net_Margin"] == 0.0


def test_balance_derived_fields():
    balance = derive_dataset(_sample_dataset()).balance
    first = balance[0]

    assert first["Current_Assets"] == 60.0
    assert first["Current_Liabilities"] == 20.0
    assert first["Working_Capital"] == 40.0
    assert first["Total_Debt"] == 25.0
    assert first["Debt_to_Equity"] == pytest.approx(25 / 75)
    assert first["MoM_Change_Total_Assets"] == 0.0
    assert balance[1]["MoM_Change_Total_Assets"] == pytest.approx(15.0)


def test_debt_to_equity_zero_equity():
    ds = Dataset(balance=[{"Month": "Jan", "Accounts_Payable": "10", "Loans": "5", "Equity": "0"}])
    assert derive_dataset(ds).balance[0]["Debt_to_Equity"] == 0.0


def test_cashflow_matches_income_by_month():
    ds = _sample_dataset()
    # Reverse the income rows; cash-flow ratios must still use the same Month
    ds.income = list(reversed(ds.income))
    cashflow = derive_dataset(ds).cashflow

    assert cashflow[0]["OCF_to_Net_Income"] == pytest.approx(16 / 15 * 100)
    assert cashflow[0]["Free_Cash_Flow"] == pytest.approx(12.0)
    assert cashflow[0]["FCF_to_Revenue"] == pytest.approx(12.0)
    assert [r["Cumulative_Cash"] for r in cashflow] == [14.0, 25.0, 30.0]


def test_malformed_cells_read_as_zero():
    ds = Dataset(income=[{"Month": "Jan", "Revenue": "n/a", "Gross_Profit": None, "Net_Income": "inf"}])
    row = derive_dataset(ds).income[0]
    assert row["Gross_Margin"] == 0.0
    assert row["Net_Margin"] == 0.0


def test_out_of_range_integers_read_as_zero():
    ds = Dataset(
        income=[{"Month": "Jan", "Revenue": 10 ** 400, "Gross_Profit": 40,
                 "Cost_of_Goods_Sold": 10 ** 400, "Net_Income": 5}],
        balance=[{"Month": "Jan", "Cash": 10 ** 400, "Accounts_Receivable": 10}],
    )
    for recompute in (False, True):
        out = derive_dataset(ds, recompute=recompute)
        assert out.income[0]["Gross_Margin"] == 0.0
        assert out.balance[0]["Current_Assets"] == 10.0


def test_input_not_modified():
    ds = _sample_dataset()
    derive_dataset(ds)
    derive_dataset(ds, recompute=True)
    assert ds == _sample_dataset()


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


def test_initial_derivation_is_idempotent():
    once = derive_dataset(_sample_dataset())
    twice = derive_dataset(once)
    assert twice == once


def test_recompute_is_idempotent():
    once = derive_dataset(derive_dataset(_sample_dataset()), recompute=True)
    twice = derive_dataset(once, recompute=True)
    assert twice == once


# ---------------------------------------------------------------------------
# Recompute
# ---------------------------------------------------------------------------


def test_recompute_profit_lines():
    income = derive_dataset(_sample_dataset(), recompute=True).income
    feb = income[1]
    assert feb["Gross_Profit"] == 50.0
    assert feb["Operating_Income"] == 25.0
    assert feb["Net_Income"] == 25.0   # gross - opex; no tax or interest


def test_recompute_operating_cash_equals_net_income():
    ds = derive_dataset(_sample_dataset(), recompute=True)
    for inc, cf in zip(ds.income, ds.cashflow):
        assert cf["Cash_From_Operations"] == inc["Net_Income"]
        assert cf["Net_Cash_Flow"] == pytest.approx(
            cf["Cash_From_Operations"] + float(cf["Cash_From_Investing"]) + float(cf["Cash_From_Financing"])
        )


def test_balance_invariant_after_recompute():
    ds = apply_edit(derive_dataset(_sample_dataset()), "balance", 1, "Loans", "9")
    for b in ds.balance:
        assert b["Total_Assets"] == pytest.approx(
            b["Cash"] + float(b["Accounts_Receivable"]) + float(b["Equipment"])
        )
        assert b["Equity"] == pytest.approx(
            b["Total_Assets"] - (float(b["Accounts_Payable"]) + float(b["Loans"]))
        )


def test_cash_propagation():
    ds = derive_dataset(_sample_dataset(), recompute=True)
    assert ds.balance[0]["Cash"] == 50.0
    for i in range(1, len(ds.balance)):
        expected = ds.balance[i - 1]["Cash"] + ds.cashflow[i]["Net_Cash_Flow"]
        assert ds.balance[i]["Cash"] == pytest.approx(expected)


def test_cash_propagation_row_zero_keeps_own_cash():
    ds = Dataset(
        cashflow=[
            {"Month": "Jan", "Cash_From_Investing": "15", "Cash_From_Financing": "0"},
            {"Month": "Feb", "Cash_From_Investing": "-5", "Cash_From_Financing": "0"},
        ],
        balance=[
            {"Month": "Jan", "Cash": 50, "Accounts_Receivable": 10, "Accounts_Payable": 20,
             "Loans": 5, "Equipment": 0},
            {"Month": "Feb", "Cash": 0, "Accounts_Receivable": 10, "Accounts_Payable": 20,
             "Loans": 5, "Equipment": 0},
        ],
    )
    out = derive_dataset(ds, recompute=True)

    assert out.cashflow[0]["Net_Cash_Flow"] == 15.0
    assert out.cashflow[1]["Net_Cash_Flow"] == -5.0
    assert out.balance[0]["Cash"] == 50.0
    assert out.balance[1]["Cash"] == 45.0
    assert out.balance[0]["Total_Assets"] == 60.0
    assert out.balance[0]["Equity"] == 35.0


def test_balance_longer_than_cashflow_keeps_own_cash():
    ds = Dataset(
        cashflow=[{"Month": "Jan", "Cash_From_Investing": "1"}],
        balance=[{"Month": "Jan", "Cash": "10"}, {"Month": "Feb", "Cash": "33"}],
    )
    out = derive_dataset(ds, recompute=True)
    assert out.balance[1]["Cash"] == 33.0


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------


def test_apply_edit_recomputes_all_statements():
    base = derive_dataset(_sample_dataset())
    edited = apply_edit(base, "income", 1, "Revenue", "$150")

    assert edited.income[1]["Revenue"] == 150.0
    assert edited.income[1]["Gross_Profit"] == 80.0
    assert edited.income[2]["Revenue_Growth"] == pytest.approx(-40.0)
    # Net income flows into operating cash and then into cash
    assert edited.cashflow[1]["Cash_From_Operations"] == 55.0
    assert edited.balance[1]["Cash"] == pytest.approx(
        edited.balance[0]["Cash"] + edited.cashflow[1]["Net_Cash_Flow"]
    )
    # original untouched
    assert base.income[1]["Revenue"] == "120"


def test_apply_edit_strips_formatting():
    edited = apply_edit(derive_dataset(_sample_dataset()), "balance", 0, "Loans", "$1,250.50")
    assert edited.balance[0]["Loans"] == 1250.5


def test_apply_edit_unparseable_text_reads_as_zero():
    edited = apply_edit(derive_dataset(_sample_dataset()), "income", 0, "Revenue", "abc")
    assert edited.income[0]["Revenue"] == ""
    assert edited.income[0]["Gross_Profit"] == -60.0
    assert edited.income[0]["Gross_Margin"] == 0.0


def test_apply_edit_bad_row_only_recomputes():
    base = derive_dataset(_sample_dataset())
    edited = apply_edit(base, "income", 7, "Revenue", "500")
    assert edited == derive_dataset(base, recompute=True)

    edited = apply_edit(base, "ledger", 0, "Revenue", "500")
    assert edited == derive_dataset(base, recompute=True)


def test_editable_whitelist():
    assert is_editable("income", "Revenue")
    assert is_editable("balance", "Loans")
    assert is_editable("cashflow", "Cash_From_Investing")
    assert not is_editable("income", "Net_Income")
    assert not is_editable("balance", "Total_Assets")
    assert not is_editable("ledger", "Revenue")


def test_dataset_helpers():
    ds = derive_dataset(_sample_dataset())
    assert ds.statement("nope") is None
    assert ds.months("income") == ["Jan", "Feb", "Mar"]
    df = ds.to_frame("balance")
    assert list(df["Month"]) == ["Jan", "Feb", "Mar"]
    assert Dataset().to_frame("income").empty
