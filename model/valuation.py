"""
Discounted cash-flow valuation over the cash-flow statement.

Two discounting granularities live side by side on purpose:

* :func:`discounted_cash_flow` / :func:`terminal_value` treat one array
  index as one step of the *annual* rate.
* :func:`forward_dcf_series` converts the annual rate to its
  monthly-equivalent ``(1 + r) ** (1/12) - 1`` and, for every period,
  discounts the remaining cash flows from that period onward.

Functions degrade to 0 instead of raising when inputs are empty or the
perpetuity formula is undefined.
"""

import logging

import numpy as np

from data.mappings import resolve
from model.core import safe_number

logger = logging.getLogger(__name__)

DEFAULT_DISCOUNT_RATE = 0.12
DEFAULT_TERMINAL_GROWTH = 0.03


# ---------------------------------------------------------------------------
# Free cash flow
# ---------------------------------------------------------------------------


def free_cash_flow_series(cashflow: list[dict]) -> list[float]:
    """``operating cash flow - capex`` per row.

    Both lines are resolved through the cash-flow alias table, so
    ``Operating_Cash_Flow`` or ``Capital_Expenditure`` style inputs are
    accepted.  A missing capex column counts as 0.
    """
    out: list[float] = []
    for row in cashflow or []:
        ops = safe_number(resolve(row, "cashflow", "Cash_From_Operations"))
        capex = safe_number(resolve(row, "cashflow", "Capex"))
        out.append(ops - capex)
    return out


# ---------------------------------------------------------------------------
# Discounting
# ---------------------------------------------------------------------------


def discounted_cash_flow(cashflows: list, discount_rate: float = DEFAULT_DISCOUNT_RATE) -> float:
    """Present value ``sum(cf[t] / (1 + rate) ** (t + 1))`` over the horizon."""
    if not cashflows:
        return 0.0
    values = np.array([safe_number(cf) for cf in cashflows], dtype=float)
    factors = (1 + discount_rate) ** np.arange(1, len(values) + 1)
    return float(np.sum(values / factors))


def terminal_value(last_fcf: float = 0.0, growth_rate: float = DEFAULT_TERMINAL_GROWTH,
                   discount_rate: float = DEFAULT_DISCOUNT_RATE) -> float:
    """Gordon-growth terminal value ``fcf * (1 + g) / (rate - g)``.

    Returns 0 when ``discount_rate <= growth_rate``, equality included.
    """
    if discount_rate <= growth_rate:
        return 0.0
    return safe_number(last_fcf) * (1 + growth_rate) / (discount_rate - growth_rate)


def monthly_rate(annual_rate: float) -> float:
    return (1 + annual_rate) ** (1 / 12) - 1


def forward_dcf_series(cashflows: list, annual_rate: float = DEFAULT_DISCOUNT_RATE) -> list[float]:
    """For each period *i*, the PV of ``cashflows[i:]`` at the monthly-equivalent rate."""
    rate = monthly_rate(annual_rate)
    values = [safe_number(cf) for cf in cashflows or []]
    return [discounted_cash_flow(values[i:], rate) for i in range(len(values))]


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


def build_valuation(cashflow: list[dict], discount_rate: float = DEFAULT_DISCOUNT_RATE,
                    terminal_growth: float = DEFAULT_TERMINAL_GROWTH) -> dict:
    """Run the aggregate DCF over the cash-flow statement.

    Returns
    -------
    dict
        ``freeCashFlow`` (list), ``dcf``, ``terminalValue``,
        ``intrinsicValue`` and ``dcfValid`` (False when every FCF is
        negative or there is no data).
    """
    fcf = free_cash_flow_series(cashflow)
    dcf_value = discounted_cash_flow(fcf, discount_rate)
    terminal = terminal_value(fcf[-1] if fcf else 0.0, terminal_growth, discount_rate)

    dcf_valid = bool(fcf) and not all(v < 0 for v in fcf)
    if fcf and not dcf_valid:
        logger.warning("All free cash flows are negative; DCF valuation unreliable")
    if discount_rate <= terminal_growth:
        logger.warning(
            "Discount rate (%.4f) <= terminal growth (%.4f); terminal value set to 0",
            discount_rate, terminal_growth,
        )

    return {
        "freeCashFlow": fcf,
        "dcf": dcf_value,
        "terminalValue": terminal,
        "intrinsicValue": dcf_value + terminal,
        "dcfValid": dcf_valid,
    }
