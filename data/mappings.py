"""
Mappings between source CSV column names and canonical statement columns.

Every engine reads canonical names only.  Heterogeneous schemas are
resolved once, at ingestion, by :func:`normalize_statement`; the few
engines that accept rows straight from a caller resolve through the same
tables via :func:`resolve`.
"""

STATEMENTS: tuple[str, ...] = ("income", "cashflow", "balance")

# Source file suffix per statement (``<prefix>_income_statement.csv`` ...)
STATEMENT_FILES: dict[str, str] = {
    "income": "income_statement.csv",
    "cashflow": "cash_flow.csv",
    "balance": "balance_sheet.csv",
}

PERIOD_COLUMN = "Month"

# ---------------------------------------------------------------------------
# Canonical column -> accepted aliases, in priority order.
# The canonical name itself always wins when present.
# ---------------------------------------------------------------------------

INCOME_ALIASES: dict[str, tuple[str, ...]] = {
    "Revenue": (),
    "Cost_of_Goods_Sold": (),
    "Operating_Expenses": (),
    "Gross_Profit": (),
    "Operating_Income": (),
    "Net_Income": (),
}

CASHFLOW_ALIASES: dict[str, tuple[str, ...]] = {
    # Cash_From_Operations is what recompute maintains, so it wins over
    # a stale Operating_Cash_Flow column.
    "Cash_From_Operations": ("Operating_Cash_Flow",),
    "Cash_From_Investing": (),
    "Cash_From_Financing": (),
    "Net_Cash_Flow": (),
    "Capex": ("CapEx", "Capital_Expenditure", "Investing_Capex"),
}

BALANCE_ALIASES: dict[str, tuple[str, ...]] = {
    "Cash": ("cash", "Cash_Balance"),
    "Accounts_Receivable": ("Accounts Receivable", "AccountsReceivable", "AR"),
    "Equipment": (),
    "Accounts_Payable": ("Accounts Payable", "AccountsPayable", "AP"),
    "Loans": ("Debt", "Total_Debt"),
    "Current_Liabilities": ("Current Liabilities", "CurrentLiability"),
    "Equity": (),
    "Total_Assets": (),
}

COLUMN_ALIASES: dict[str, dict[str, tuple[str, ...]]] = {
    "income": INCOME_ALIASES,
    "cashflow": CASHFLOW_ALIASES,
    "balance": BALANCE_ALIASES,
}

# Raw columns a user may overwrite from the interface.
EDITABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "income": ("Revenue", "Cost_of_Goods_Sold", "Operating_Expenses"),
    "cashflow": ("Cash_From_Operations", "Cash_From_Investing", "Cash_From_Financing"),
    "balance": ("Cash", "Accounts_Receivable", "Equipment", "Accounts_Payable", "Loans", "Equity"),
}


def resolve(row: dict | None, statement: str, column: str):
    """Return the first present value for *column* in *row*.

    Looks up the canonical name first, then each alias in priority order.
    Returns ``None`` when nothing matches or *row* is not a mapping.
    """
    if not isinstance(row, dict):
        return None
    if row.get(column) is not None:
        return row[column]
    for alias in COLUMN_ALIASES.get(statement, {}).get(column, ()):
        if row.get(alias) is not None:
            return row[alias]
    return None


def normalize_statement(rows: list[dict], statement: str) -> list[dict]:
    """Copy *rows*, adding canonical columns found only under an alias.

    Alias columns are left in place; unknown columns pass through
    untouched.
    """
    aliases = COLUMN_ALIASES.get(statement, {})
    out: list[dict] = []
    for row in rows:
        new_row = dict(row)
        for column in aliases:
            if new_row.get(column) is None:
                value = resolve(row, statement, column)
                if value is not None:
                    new_row[column] = value
        out.append(new_row)
    return out
