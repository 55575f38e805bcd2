"""
Working-capital and liquidity ratios from the latest balance-sheet row.

Columns are resolved through the balance-sheet alias table, so rows that
still carry ``AR`` / ``Accounts Payable`` / ``Debt`` style names work the
same as canonical ones.  Ratio denominators of 0 are replaced by 1 so a
dashboard never shows an infinite ratio; this is a display policy, not a
correctness guard.
"""

from data.mappings import resolve
from model.core import safe_number


def _latest_row(balance: list[dict] | None) -> dict:
    if isinstance(balance, list) and balance and isinstance(balance[-1], dict):
        return balance[-1]
    return {}


def _get(row: dict, column: str) -> float:
    return safe_number(resolve(row, "balance", column))


def _components(balance: list[dict] | None) -> dict[str, float]:
    row = _latest_row(balance)
    return {
        "cash": _get(row, "Cash"),
        "receivables": _get(row, "Accounts_Receivable"),
        "payables": _get(row, "Accounts_Payable"),
        "loans": _get(row, "Loans"),
        "current_liabilities": _get(row, "Current_Liabilities"),
    }


def working_capital(balance: list[dict] | None) -> float:
    c = _components(balance)
    current_assets = c["cash"] + c["receivables"]
    return current_assets - (c["payables"] + c["loans"] + c["current_liabilities"])


def current_ratio(balance: list[dict] | None) -> float:
    c = _components(balance)
    current_assets = c["cash"] + c["receivables"]
    liabilities = c["payables"] + c["loans"] + c["current_liabilities"]
    return current_assets / (liabilities or 1)


def quick_ratio(balance: list[dict] | None) -> float:
    c = _components(balance)
    quick_assets = c["cash"] + c["receivables"]
    return quick_assets / (c["current_liabilities"] or 1)


def cash_conversion_cycle(dso: float, dio: float, dpo: float) -> float:
    """Days sales outstanding + days inventory outstanding - days payable outstanding."""
    return safe_number(dso) + safe_number(dio) - safe_number(dpo)
