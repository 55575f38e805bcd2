"""
Profitability and return series.

Every function returns one value per period (fractions, not percent).
"""

from model.core import margin, pick, series

DEFAULT_TAX_RATE = 0.25


def gross_margin_series(income: list[dict]) -> list[float]:
    return series(income, lambda row, i, rows: margin(pick(row, "Gross_Profit"), pick(row, "Revenue")))


def operating_margin_series(income: list[dict]) -> list[float]:
    return series(income, lambda row, i, rows: margin(pick(row, "Operating_Income"), pick(row, "Revenue")))


def net_margin_series(income: list[dict]) -> list[float]:
    return series(income, lambda row, i, rows: margin(pick(row, "Net_Income"), pick(row, "Revenue")))


def roic_series(income: list[dict], balance: list[dict],
                tax_rate: float = DEFAULT_TAX_RATE) -> list[float]:
    """Return on invested capital, aligned positionally.

    ``NOPAT = Operating_Income * (1 - tax_rate)`` over
    ``Total_Assets - (Accounts_Payable + Loans)``.  The result has
    ``min(len(income), len(balance))`` entries; a zero invested-capital
    period yields 0.
    """
    length = min(len(income or []), len(balance or []))
    out: list[float] = []
    for i in range(length):
        nopat = pick(income[i], "Operating_Income") * (1 - tax_rate)
        invested = pick(balance[i], "Total_Assets") - (
            pick(balance[i], "Accounts_Payable") + pick(balance[i], "Loans")
        )
        out.append(0.0 if invested == 0 else nopat / invested)
    return out


def build_profitability(income: list[dict], balance: list[dict],
                        tax_rate: float = DEFAULT_TAX_RATE) -> dict[str, list[float]]:
    return {
        "grossMargin": gross_margin_series(income),
        "operatingMargin": operating_margin_series(income),
        "netMargin": net_margin_series(income),
        "roic": roic_series(income, balance, tax_rate),
    }
