"""
Three-statement derivation: income statement, cash flow, balance sheet.

``derive_dataset`` is the single authoritative derivation routine.  It is
run once when a dataset is loaded (``recompute=False``) and again after
every cell edit (``recompute=True``), and always returns a fresh
:class:`Dataset` built from the raw cells, so running it twice without an
intervening raw edit changes nothing.

Dependency order is strict:

* The income statement is independent.
* The cash-flow statement reads the income row with the same ``Month``.
* The balance sheet reads the cash-flow row at the same *position* for
  cash propagation (rows ``i > 0`` only).

Recompute mode closes the accounting loop: profit lines become
derived, operating cash flow is set to net income, and Equity becomes
the balancing plug ``Total_Assets - (Accounts_Payable + Loans)``.

Percentage fields are scaled x100; ``Debt_to_Equity`` is a plain ratio.
Nothing in here raises on bad data: every value goes through
:func:`model.core.safe_number` and every division guards its denominator.
"""

import copy
import logging
from dataclasses import dataclass, field

import pandas as pd

from data.mappings import EDITABLE_COLUMNS, PERIOD_COLUMN, STATEMENTS
from model.core import growth_rate, margin, parse_edit_value, pick, safe_number, sanitized

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------


@dataclass
class Dataset:
    """The three statements of one company, each an ordered list of rows.

    Attributes
    ----------
    income, cashflow, balance : list[dict]
        Rows keyed by column name.  Row order is the temporal order;
        index 0 is the baseline period.
    """

    income: list[dict] = field(default_factory=list)
    cashflow: list[dict] = field(default_factory=list)
    balance: list[dict] = field(default_factory=list)

    def statement(self, name: str) -> list[dict] | None:
        """Return the rows for *name* or ``None`` for an unknown statement."""
        if name not in STATEMENTS:
            return None
        return getattr(self, name)

    def copy(self) -> "Dataset":
        return copy.deepcopy(self)

    def to_frame(self, name: str) -> pd.DataFrame:
        """Statement as a DataFrame (one row per period)."""
        rows = self.statement(name)
        if not rows:
            return pd.DataFrame()
        return pd.DataFrame(rows)

    def months(self, name: str) -> list:
        return [r.get(PERIOD_COLUMN, "") for r in self.statement(name) or []]


# Raw columns that recompute mode reads through ``sanitized`` (formatting
# such as "$1,200" is stripped); every other read goes through ``pick``.
RECOMPUTE_SANITIZED_COLUMNS: dict[str, tuple[str, ...]] = {
    "income": ("Revenue", "Cost_of_Goods_Sold", "Operating_Expenses"),
    "cashflow": ("Cash_From_Investing", "Cash_From_Financing"),
    "balance": ("Cash", "Accounts_Receivable", "Equipment", "Accounts_Payable", "Loans"),
}


def is_editable(statement: str, column: str) -> bool:
    return column in EDITABLE_COLUMNS.get(statement, ())


# ---------------------------------------------------------------------------
# Per-statement derivation
# ---------------------------------------------------------------------------


def _pct(part, total) -> float:
    return margin(part, total) * 100


def _growth_pct(current, previous) -> float:
    return growth_rate(current, previous) * 100


def _derive_income(rows: list[dict], recompute: bool) -> list[dict]:
    out: list[dict] = []
    for i, raw in enumerate(rows):
        row = dict(raw)
        if recompute:
            rev = sanitized(row.get("Revenue"))
            cogs = sanitized(row.get("Cost_of_Goods_Sold"))
            opex = sanitized(row.get("Operating_Expenses"))
            gross = rev - cogs
            net = gross - opex
            row["Gross_Profit"] = gross
            row["Operating_Income"] = gross - opex
            row["Net_Income"] = net
        else:
            rev = pick(row, "Revenue")
            gross = pick(row, "Gross_Profit")
            opex = pick(row, "Operating_Expenses")
            net = pick(row, "Net_Income")

        row["Gross_Margin"] = _pct(gross, rev)
        row["Operating_Margin"] = _pct(gross - opex, rev)
        row["Net_Margin"] = _pct(net, rev)

        if i == 0:
            row["Revenue_Growth"] = 0.0
            row["Net_Income_Growth"] = 0.0
        else:
            prev = out[i - 1]
            prev_rev = sanitized(prev.get("Revenue")) if recompute else pick(prev, "Revenue")
            row["Revenue_Growth"] = _growth_pct(rev, prev_rev)
            row["Net_Income_Growth"] = _growth_pct(net, pick(prev, "Net_Income"))
        out.append(row)
    return out


def _income_by_month(income: list[dict]) -> dict:
    lookup: dict = {}
    for row in income:
        month = row.get(PERIOD_COLUMN)
        if month:
            lookup[month] = row
    return lookup


def _derive_cashflow(rows: list[dict], income: list[dict], recompute: bool) -> list[dict]:
    by_month = _income_by_month(income)
    out: list[dict] = []
    cumulative = 0.0
    for raw in rows:
        row = dict(raw)
        income_row = by_month.get(row.get(PERIOD_COLUMN), {})
        net_income = pick(income_row, "Net_Income")
        revenue = pick(income_row, "Revenue")

        if recompute:
            cfo = net_income
            cfi = sanitized(row.get("Cash_From_Investing"))
            cff = sanitized(row.get("Cash_From_Financing"))
            row["Cash_From_Operations"] = cfo
            row["Net_Cash_Flow"] = cfo + cfi + cff
        else:
            cfo = pick(row, "Cash_From_Operations")
            cfi = pick(row, "Cash_From_Investing")

        cumulative += pick(row, "Net_Cash_Flow")
        row["Cumulative_Cash"] = cumulative

        # capex approximated as the investing outflow
        fcf = cfo - max(0.0, -cfi)
        row["Free_Cash_Flow"] = fcf
        row["OCF_to_Net_Income"] = _pct(cfo, net_income)
        row["FCF_to_Revenue"] = _pct(fcf, revenue)
        out.append(row)
    return out


def _derive_balance(rows: list[dict], cashflow: list[dict], recompute: bool) -> list[dict]:
    out: list[dict] = []
    for i, raw in enumerate(rows):
        row = dict(raw)
        if recompute:
            if i > 0 and i < len(cashflow):
                cash = pick(out[i - 1], "Cash") + pick(cashflow[i], "Net_Cash_Flow")
            else:
                cash = sanitized(row.get("Cash"))
            row["Cash"] = cash
            ar = sanitized(row.get("Accounts_Receivable"))
            equipment = sanitized(row.get("Equipment"))
            ap = sanitized(row.get("Accounts_Payable"))
            loans = sanitized(row.get("Loans"))
            total_assets = cash + ar + equipment
            equity = total_assets - (ap + loans)
            row["Total_Assets"] = total_assets
            row["Equity"] = equity
        else:
            cash = pick(row, "Cash")
            ar = pick(row, "Accounts_Receivable")
            ap = pick(row, "Accounts_Payable")
            loans = pick(row, "Loans")
            equity = pick(row, "Equity")
            total_assets = pick(row, "Total_Assets")

        row["Current_Assets"] = cash + ar
        row["Current_Liabilities"] = ap
        row["Working_Capital"] = row["Current_Assets"] - row["Current_Liabilities"]
        row["Total_Debt"] = ap + loans
        row["Debt_to_Equity"] = margin(row["Total_Debt"], equity)

        if i == 0:
            row["MoM_Change_Total_Assets"] = 0.0
        else:
            row["MoM_Change_Total_Assets"] = _growth_pct(
                total_assets, pick(out[i - 1], "Total_Assets"),
            )
        out.append(row)
    return out


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def derive_dataset(dataset: Dataset, recompute: bool = False) -> Dataset:
    """Return a new :class:`Dataset` with every derived column filled in.

    Parameters
    ----------
    dataset : Dataset
        Input rows.  Not modified.
    recompute : bool
        ``False`` for the first derivation after loading: profit lines,
        operating cash flow, cash, total assets and equity are taken as
        supplied.  ``True`` after an edit: those lines are re-derived
        from the editable raw fields so the three statements reconcile.

    Returns
    -------
    Dataset
    """
    income = _derive_income(dataset.income or [], recompute)
    cashflow = _derive_cashflow(dataset.cashflow or [], income, recompute)
    balance = _derive_balance(dataset.balance or [], cashflow, recompute)
    logger.debug(
        "Derived dataset (recompute=%s): %d income, %d cash-flow, %d balance rows",
        recompute, len(income), len(cashflow), len(balance),
    )
    return Dataset(income=income, cashflow=cashflow, balance=balance)


def apply_edit(dataset: Dataset, statement: str, row_index: int,
               column: str, raw_text) -> Dataset:
    """Overwrite one raw cell and recompute all three statements.

    *raw_text* is stripped of everything but digits, ``.`` and ``-``
    before being written.  An unknown statement or out-of-range row
    leaves the cells untouched; the dataset is still recomputed.

    Returns
    -------
    Dataset
        A new dataset; *dataset* itself is not modified.
    """
    edited = dataset.copy()
    rows = edited.statement(statement)
    if rows is None or not isinstance(row_index, int) or not 0 <= row_index < len(rows):
        logger.warning(
            "Ignoring edit of %s[%r].%s: no such statement row", statement, row_index, column,
        )
    else:
        value = parse_edit_value(raw_text)
        rows[row_index][column] = value
        logger.info(
            "Edited %s[%d].%s = %r (%.2f)", statement, row_index, column, value, safe_number(value),
        )
    return derive_dataset(edited, recompute=True)
