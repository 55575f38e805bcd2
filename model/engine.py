"""
Aggregation layer: one call that runs every analytical engine.

``run_finance_engine`` composes the profitability, valuation and
liquidity engines with a few ad hoc series (operating leverage, capital
structure, efficiency) into the single structure presentation code
consumes.  Each domain is shaped::

    {
        "series": {<metric>: [...], "months": [...]},
        "latest": {<metric>: <last value or 0>},
        "components": {...},   # optional breakdown
    }

The function is pure: the dataset is read, never modified.
"""

import logging
import math
import os

import yaml

from model.core import labels, pick, safe_number
from model.liquidity import current_ratio, quick_ratio, working_capital
from model.profitability import DEFAULT_TAX_RATE, build_profitability
from model.valuation import (
    DEFAULT_DISCOUNT_RATE,
    DEFAULT_TERMINAL_GROWTH,
    build_valuation,
    forward_dcf_series,
    monthly_rate,
)

logger = logging.getLogger(__name__)

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DEFAULT_SETTINGS: dict[str, float] = {
    "discount_rate": DEFAULT_DISCOUNT_RATE,
    "terminal_growth": DEFAULT_TERMINAL_GROWTH,
    "tax_rate": DEFAULT_TAX_RATE,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load_config(path: str | None = None) -> dict:
    """Load ``config.yaml`` (project root by default).

    Returns
    -------
    dict
        Parsed configuration, or an empty dict if the file is not found.
    """
    config_path = path or os.path.join(_PROJECT_ROOT, "config.yaml")
    try:
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.debug("No config file at %s; using defaults", config_path)
        return {}


def _settings(settings: dict | None) -> dict[str, float]:
    merged = dict(DEFAULT_SETTINGS)
    for key, value in (settings or {}).items():
        if key in merged and value is not None:
            merged[key] = safe_number(value)
    return merged


def _last(values: list) -> float:
    return values[-1] if values else 0.0


def _latest(series: dict[str, list]) -> dict[str, float]:
    return {k: _last(v) for k, v in series.items() if k != "months"}


# ---------------------------------------------------------------------------
# Ad hoc series
# ---------------------------------------------------------------------------

def operating_leverage_series(income: list[dict]) -> list[float]:
    """Degree of operating leverage: EBIT growth over revenue growth.

    EBIT is ``Gross_Profit - Operating_Expenses``.  Prior-period
    denominators of 0 are replaced by 1; a zero or non-finite revenue
    growth yields 0, as does the first period.
    """
    ebit = [pick(r, "Gross_Profit") - pick(r, "Operating_Expenses") for r in income]
    revenue = [pick(r, "Revenue") for r in income]
    out: list[float] = []
    for i, rev in enumerate(revenue):
        if i == 0:
            out.append(0.0)
            continue
        rev_growth = (rev - revenue[i - 1]) / (abs(revenue[i - 1]) or 1)
        ebit_growth = (ebit[i] - ebit[i - 1]) / (abs(ebit[i - 1]) or 1)
        if rev_growth == 0 or not math.isfinite(rev_growth):
            out.append(0.0)
        else:
            out.append(ebit_growth / rev_growth)
    return out


def _capital_structure_series(balance: list[dict]) -> dict[str, list[float]]:
    return {
        "debtToEquity": [
            (pick(b, "Loans") + pick(b, "Accounts_Payable")) / (pick(b, "Equity") or 1)
            for b in balance
        ],
        "equityRatio": [
            pick(b, "Equity") / (pick(b, "Total_Assets") or 1) for b in balance
        ],
    }


def _efficiency_series(income: list[dict], balance: list[dict]) -> dict[str, list[float]]:
    def _bal(i: int, key: str) -> float:
        return pick(balance[i], key) if i < len(balance) else 0.0

    return {
        "receivablesTurnover": [
            pick(r, "Revenue") / (_bal(i, "Accounts_Receivable") or 1)
            for i, r in enumerate(income)
        ],
        "assetTurnover": [
            pick(r, "Revenue") / (_bal(i, "Total_Assets") or 1)
            for i, r in enumerate(income)
        ],
    }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def run_finance_engine(dataset, settings: dict | None = None) -> dict:
    """Compute every analysis domain for a derived dataset.

    Parameters
    ----------
    dataset : model.statements.Dataset
        Dataset after :func:`model.statements.derive_dataset`.
    settings : dict, optional
        ``discount_rate`` (annual), ``terminal_growth``, ``tax_rate``;
        usually the ``model_parameters`` section of ``config.yaml``.

    Returns
    -------
    dict
        Keys ``datasets``, ``liquidity``, ``profitability``,
        ``valuation``, ``operatingLeverage``, ``capitalStructure``,
        ``efficiency``.
    """
    params = _settings(settings)
    income = dataset.income or []
    balance = dataset.balance or []
    cashflow = dataset.cashflow or []

    months = labels(income) if income else labels(balance)

    # --- Liquidity (per balance row) ---
    liq_series = {
        "workingCapital": [working_capital([b]) for b in balance],
        "currentRatio": [current_ratio([b]) for b in balance],
        "quickRatio": [quick_ratio([b]) for b in balance],
    }
    last_balance = balance[-1] if balance else {}
    liquidity = {
        "series": {**liq_series, "months": months},
        "latest": _latest(liq_series),
        "components": {
            "latest": {
                "Cash": pick(last_balance, "Cash"),
                "Accounts_Receivable": pick(last_balance, "Accounts_Receivable"),
                "Current_Liabilities": (
                    pick(last_balance, "Current_Liabilities")
                    or pick(last_balance, "Accounts_Payable")
                ),
            },
        },
    }

    # --- Profitability ---
    prof_series = build_profitability(income, balance, params["tax_rate"])
    profitability = {
        "series": {**prof_series, "months": months},
        "latest": _latest(prof_series),
    }

    # --- Valuation ---
    annual = params["discount_rate"]
    aggregate = build_valuation(cashflow, annual, params["terminal_growth"])
    fcf = aggregate["freeCashFlow"]
    dcf_series = forward_dcf_series(fcf, annual)
    valuation = {
        "series": {"freeCashFlow": fcf, "dcfSeries": dcf_series, "months": months},
        "latest": {"freeCashFlow": _last(fcf), "discountedCF": _last(dcf_series)},
        "components": {
            "dcf": aggregate["dcf"],
            "terminalValue": aggregate["terminalValue"],
            "intrinsicValue": aggregate["intrinsicValue"],
            "dcfValid": aggregate["dcfValid"],
            "annualRate": annual,
            "monthlyRate": monthly_rate(annual),
            "terminalGrowth": params["terminal_growth"],
        },
    }

    # --- Operating leverage ---
    dol = operating_leverage_series(income)
    operating_leverage = {
        "series": {"degreeOfOperatingLeverage": dol, "months": months},
        "latest": {"degreeOfOperatingLeverage": _last(dol)},
    }

    # --- Capital structure ---
    cap_series = _capital_structure_series(balance)
    capital_structure = {
        "series": {**cap_series, "months": months},
        "latest": _latest(cap_series),
    }

    # --- Efficiency ---
    eff_series = _efficiency_series(income, balance)
    efficiency = {
        "series": {**eff_series, "months": months},
        "latest": _latest(eff_series),
    }

    logger.debug("Finance engine ran over %d periods", len(months))

    return {
        "datasets": {"income": income, "balance": balance, "cashflow": cashflow},
        "liquidity": liquidity,
        "profitability": profitability,
        "valuation": valuation,
        "operatingLeverage": operating_leverage,
        "capitalStructure": capital_structure,
        "efficiency": efficiency,
    }
