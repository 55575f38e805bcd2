"""
Rule-based narrative text from aggregate metrics.

``generate_narrative`` picks one template sentence per recognised metric
by comparing it against an injected threshold table, then splits the
sentences into two short paragraphs.  It is a pure function and never
raises: unknown, missing, non-numeric or non-finite metrics are skipped.
"""

import math

import numpy as np

from model.core import pick, sanitized

FALLBACK_NARRATIVE = "No narrative available for the loaded dataset."

# Industry-aligned defaults; override via ``narrative_thresholds`` in config.yaml.
DEFAULT_THRESHOLDS: dict = {
    "gross_margin_pct": {"high": 40.0, "low": 20.0},   # percent
    "revenue_volatility_pct": 8.0,                     # mean |MoM change|, percent
    "current_ratio": {"healthy": 1.5, "warning": 1.0},
    "debt_to_equity": {"safe": 1.0, "risky": 2.0},
    "net_income_baseline": 0.0,
}

# Threshold tables may also use camelCase option names; those win.
THRESHOLD_KEYS: dict[str, str] = {
    "gross_margin_pct": "grossMarginPct",
    "revenue_volatility_pct": "revenueVolatilityPct",
    "current_ratio": "currentRatio",
    "debt_to_equity": "debtToEquity",
    "net_income_baseline": "netIncomeBaseline",
}

# Revenue trend (first-to-last %) below this reads as declining.
DECLINING_TREND_PCT = -0.5

TEMPLATES: dict[str, dict[str, str]] = {
    "gross_margin": {
        "high": "Gross margins are high, indicating strong pricing power or low cost of goods sold.",
        "medium": "Gross margins are moderate, suggesting reasonable pricing and some room for efficiency improvements.",
        "low": "Gross margins are low, which may indicate pricing pressure or elevated production costs.",
    },
    "revenue": {
        "stable": "Revenue growth is stable month-over-month, indicating consistent demand.",
        "volatile": "Revenue shows higher volatility month-over-month, suggesting irregular demand or seasonality.",
        "declining": "Revenue is trending downward month-over-month, which may signal weakening demand.",
    },
    "liquidity": {
        "healthy": "Liquidity appears healthy, with adequate short-term assets to cover liabilities.",
        "warning": "Liquidity is tight; monitor short-term obligations and working capital closely.",
    },
    "leverage": {
        "safe": "Leverage is within conservative bounds, reducing solvency risk.",
        "risky": "Leverage is elevated relative to equity; this increases financial vulnerability during downturns.",
    },
    "net_income": {
        "positive": "Net income is positive and consistent, reflecting operational profitability.",
        "negative": "Net income is negative, which could indicate persistent losses or one-off charges.",
    },
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _number(value) -> float | None:
    """Return *value* as a float if it is a real, finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def _threshold(thresholds, key: str, sub: str | None = None) -> float:
    """Look up ``THRESHOLD_KEYS[key]`` (camelCase), then *key*, then the default."""
    default = DEFAULT_THRESHOLDS[key] if sub is None else DEFAULT_THRESHOLDS[key][sub]
    if not isinstance(thresholds, dict):
        return default
    value = thresholds.get(THRESHOLD_KEYS[key])
    if value is None:
        value = thresholds.get(key)
    if sub is not None:
        value = value.get(sub) if isinstance(value, dict) else None
    value = _number(value)
    return default if value is None else value


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------


def generate_narrative(metrics: dict | None, thresholds: dict | None = None) -> str:
    """Assemble a two-paragraph narrative from *metrics*.

    Parameters
    ----------
    metrics : dict
        Any subset of ``avg_gross_margin`` (percent),
        ``revenue_volatility`` (percent), ``revenue_trend`` (percent),
        ``current_ratio``, ``debt_to_equity``, ``net_income_avg``.
    thresholds : dict, optional
        Threshold table shaped like :data:`DEFAULT_THRESHOLDS`, keyed by
        either the snake_case or the camelCase option names
        (``grossMarginPct``, ``revenueVolatilityPct``, ``currentRatio``,
        ``debtToEquity``, ``netIncomeBaseline``); missing entries fall
        back to the defaults.

    Returns
    -------
    str
        Two paragraphs separated by a blank line, a single paragraph
        when only one sentence applies, or :data:`FALLBACK_NARRATIVE`.
    """
    if not isinstance(metrics, dict):
        metrics = {}
    parts: list[str] = []

    gm = _number(metrics.get("avg_gross_margin"))
    if gm is not None:
        if gm >= _threshold(thresholds, "gross_margin_pct", "high"):
            parts.append(TEMPLATES["gross_margin"]["high"])
        elif gm <= _threshold(thresholds, "gross_margin_pct", "low"):
            parts.append(TEMPLATES["gross_margin"]["low"])
        else:
            parts.append(TEMPLATES["gross_margin"]["medium"])

    volatility = _number(metrics.get("revenue_volatility"))
    trend = _number(metrics.get("revenue_trend"))
    if volatility is not None or trend is not None:
        if trend is not None and trend < DECLINING_TREND_PCT:
            parts.append(TEMPLATES["revenue"]["declining"])
        elif (volatility or 0.0) > _threshold(thresholds, "revenue_volatility_pct"):
            parts.append(TEMPLATES["revenue"]["volatile"])
        else:
            parts.append(TEMPLATES["revenue"]["stable"])

    cr = _number(metrics.get("current_ratio"))
    if cr is not None:
        if cr >= _threshold(thresholds, "current_ratio", "healthy"):
            parts.append(TEMPLATES["liquidity"]["healthy"])
        else:
            parts.append(TEMPLATES["liquidity"]["warning"])

    de = _number(metrics.get("debt_to_equity"))
    if de is not None:
        if de <= _threshold(thresholds, "debt_to_equity", "safe"):
            parts.append(TEMPLATES["leverage"]["safe"])
        elif de >= _threshold(thresholds, "debt_to_equity", "risky"):
            parts.append(TEMPLATES["leverage"]["risky"])
        else:
            # between the bands still reads as safe
            parts.append(TEMPLATES["leverage"]["safe"])

    ni = _number(metrics.get("net_income_avg"))
    if ni is not None:
        if ni >= _threshold(thresholds, "net_income_baseline"):
            parts.append(TEMPLATES["net_income"]["positive"])
        else:
            parts.append(TEMPLATES["net_income"]["negative"])

    if not parts:
        return FALLBACK_NARRATIVE
    half = math.ceil(len(parts) / 2)
    paragraphs = [" ".join(parts[:half]), " ".join(parts[half:])]
    return "\n\n".join(p for p in paragraphs if p)


def compute_narrative_metrics(dataset) -> dict[str, float]:
    """Narrative inputs from a derived :class:`model.statements.Dataset`.

    Income-based metrics are omitted when there are no income rows and
    balance-based ones when there are no balance rows.
    """
    metrics: dict[str, float] = {}
    income = dataset.income or []
    balance = dataset.balance or []

    if income:
        revenues = [sanitized(r.get("Revenue")) for r in income]
        changes = [
            abs((cur - prev) / abs(prev) * 100) if prev else 0.0
            for prev, cur in zip(revenues, revenues[1:])
        ]
        metrics["avg_gross_margin"] = float(np.mean([pick(r, "Gross_Margin") for r in income]))
        metrics["revenue_volatility"] = float(np.mean(changes)) if changes else 0.0
        metrics["revenue_trend"] = (
            (revenues[-1] - revenues[0]) / (abs(revenues[0]) or 1) * 100
            if len(revenues) >= 2 else 0.0
        )
        metrics["net_income_avg"] = float(np.mean([pick(r, "Net_Income") for r in income]))

    if balance:
        last = balance[-1]
        current_liabilities = pick(last, "Current_Liabilities") or pick(last, "Accounts_Payable")
        metrics["current_ratio"] = (
            pick(last, "Current_Assets") / current_liabilities if current_liabilities else 0.0
        )
        metrics["debt_to_equity"] = pick(last, "Total_Debt") / (pick(last, "Equity") or 1)

    return metrics


def build_financial_context(company: str, dataset) -> str:
    """Plain-text summary of the latest period, for downstream consumers."""
    income = dataset.income or []
    balance = dataset.balance or []
    cashflow = dataset.cashflow or []
    lines = ["## Available Financial Data", f"Company: {company}", ""]

    if income:
        last = income[-1]
        lines += [
            f"**Income Statement**: {len(income)} periods",
            f"- Latest Revenue: {pick(last, 'Revenue'):,.2f}",
            f"- Latest Net Income: {pick(last, 'Net_Income'):,.2f}",
        ]
    if balance:
        last = balance[-1]
        lines += [
            f"**Balance Sheet**: {len(balance)} periods",
            f"- Latest Total Assets: {pick(last, 'Total_Assets'):,.2f}",
            f"- Latest Equity: {pick(last, 'Equity'):,.2f}",
        ]
    if cashflow:
        last = cashflow[-1]
        lines += [
            f"**Cash Flow**: {len(cashflow)} periods",
            f"- Latest Operating Cash Flow: {pick(last, 'Cash_From_Operations'):,.2f}",
        ]
    return "\n".join(lines)
