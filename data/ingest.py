"""
Dataset ingestion from CSV files (local folder or HTTP).

A company is a folder holding three CSV files whose names end in
``income_statement.csv``, ``cash_flow.csv`` and ``balance_sheet.csv``.
Every cell is read as a trimmed string; numeric coercion happens later,
inside the engines, through :func:`model.core.safe_number`.

Loading is the only place this package raises: a missing folder, a
missing or unreadable file, or a failed download becomes a
:class:`DatasetLoadError`.

Functions
---------
load_financial_data   -- company folder on disk          -> derived Dataset
fetch_financial_data  -- company folder behind a base URL -> derived Dataset
build_dataset         -- raw row lists                    -> derived Dataset
audit_dataset         -- report cells that silently coerce to 0
"""

import glob
import io
import logging
import math
import os
import sys
from dataclasses import dataclass

import pandas as pd
import requests

# Allow running as ``python data/ingest.py`` from the project directory.
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from data.mappings import (  # noqa: E402
    COLUMN_ALIASES,
    PERIOD_COLUMN,
    STATEMENT_FILES,
    normalize_statement,
)
from model.core import clean_numeric_text  # noqa: E402
from model.statements import RECOMPUTE_SANITIZED_COLUMNS, Dataset, derive_dataset  # noqa: E402

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.join(_PROJECT_ROOT, "datasets")
REQUEST_TIMEOUT = 30


class DatasetLoadError(RuntimeError):
    """A company dataset could not be located, read or downloaded."""


@dataclass
class DataIssue:
    """A recognised cell whose non-empty value was read as 0."""

    statement: str
    row: int
    month: str
    column: str
    value: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_company_name(folder_name: str) -> str:
    """``'redrock_holdings'`` -> ``'Redrock Holdings'``."""
    return " ".join(w[:1].upper() + w[1:] for w in folder_name.split("_") if w)


def _read_csv(source, label: str) -> list[dict]:
    """Parse CSV text or a path into a list of string-valued rows."""
    try:
        df = pd.read_csv(source, dtype=str, keep_default_na=False)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise DatasetLoadError(f"Could not parse {label}: {exc}") from exc

    df.columns = [str(c).strip() for c in df.columns]
    df = df.apply(lambda col: col.str.strip())
    return df.to_dict(orient="records")


def _find_statement_file(folder: str, suffix: str) -> str:
    matches = sorted(glob.glob(os.path.join(folder, f"*{suffix}")))
    if not matches:
        raise DatasetLoadError(f"No '*{suffix}' file in {folder}")
    if len(matches) > 1:
        logger.warning("Several '*%s' files in %s; using %s", suffix, folder, matches[0])
    return matches[0]


# ---------------------------------------------------------------------------
# Dataset construction
# ---------------------------------------------------------------------------


def build_dataset(income: list[dict], cashflow: list[dict], balance: list[dict]) -> Dataset:
    """Normalise column aliases and run the initial derivation."""
    raw = Dataset(
        income=normalize_statement(income, "income"),
        cashflow=normalize_statement(cashflow, "cashflow"),
        balance=normalize_statement(balance, "balance"),
    )
    for issue in audit_dataset(raw):
        logger.warning(
            "%s row %d (%s): %s=%r is not numeric; treated as 0",
            issue.statement, issue.row, issue.month, issue.column, issue.value,
        )
    return derive_dataset(raw)


def audit_dataset(dataset: Dataset, recompute: bool = False) -> list[DataIssue]:
    """List recognised cells that are non-empty but read as 0.

    Purely diagnostic: the engines still read such cells as 0.

    Parameters
    ----------
    dataset : Dataset
        Dataset to inspect.
    recompute : bool
        ``True`` when *dataset* was last derived in recompute mode (any
        edit applied).  Columns that mode reads with currency and
        thousands formatting stripped are then judged the same way, so
        ``"$23,500"`` is not reported.
    """
    issues: list[DataIssue] = []
    for statement, aliases in COLUMN_ALIASES.items():
        lenient = RECOMPUTE_SANITIZED_COLUMNS[statement] if recompute else ()
        for i, row in enumerate(dataset.statement(statement) or []):
            for column in aliases:
                value = row.get(column)
                if isinstance(value, str):
                    value = value.strip()
                if value is None or value == "":
                    continue
                if column in lenient:
                    value_read = clean_numeric_text(value)
                else:
                    value_read = value
                if _is_finite_number(value_read):
                    continue
                issues.append(DataIssue(
                    statement=statement, row=i,
                    month=str(row.get(PERIOD_COLUMN, "")),
                    column=column, value=str(value),
                ))
    return issues


def _is_finite_number(value) -> bool:
    """Whether :func:`model.core.safe_number` keeps *value* as a number."""
    if isinstance(value, str) and "_" in value:
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError, OverflowError):
        return False


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def load_financial_data(company: str, base_dir: str | None = None) -> Dataset:
    """Load ``<base_dir>/<company>/`` into a derived :class:`Dataset`.

    Parameters
    ----------
    company : str
        Folder name, e.g. ``'pinelands_construction'``.
    base_dir : str, optional
        Parent folder of all company datasets (default ``datasets/``).

    Raises
    ------
    DatasetLoadError
        The folder or one of the three statement files is missing or
        unreadable.
    """
    folder = os.path.join(base_dir or DEFAULT_DATA_DIR, company)
    if not os.path.isdir(folder):
        raise DatasetLoadError(f"Company dataset not found: {folder}")

    rows = {}
    for statement, suffix in STATEMENT_FILES.items():
        path = _find_statement_file(folder, suffix)
        rows[statement] = _read_csv(path, path)

    logger.info(
        "Loaded %s: %d income, %d cash-flow, %d balance rows",
        company, len(rows["income"]), len(rows["cashflow"]), len(rows["balance"]),
    )
    return build_dataset(rows["income"], rows["cashflow"], rows["balance"])


def fetch_financial_data(base_url: str, company: str, prefix: str | None = None) -> Dataset:
    """Download ``<base_url>/<company>/<prefix>_<statement>.csv`` files.

    Raises
    ------
    DatasetLoadError
        Any request fails or returns a non-2xx status.
    """
    rows = {}
    for statement, suffix in STATEMENT_FILES.items():
        name = f"{prefix}_{suffix}" if prefix else suffix
        url = f"{base_url.rstrip('/')}/{company}/{name}"
        try:
            resp = requests.get(url, timeout=REQUEST_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DatasetLoadError(f"Could not fetch {url}: {exc}") from exc
        rows[statement] = _read_csv(io.StringIO(resp.text), url)

    logger.info("Fetched %s from %s", company, base_url)
    return build_dataset(rows["income"], rows["cashflow"], rows["balance"])


def list_companies(base_dir: str | None = None) -> list[str]:
    """Company folder names available under *base_dir*."""
    root = base_dir or DEFAULT_DATA_DIR
    if not os.path.isdir(root):
        return []
    return sorted(
        d for d in os.listdir(root) if os.path.isdir(os.path.join(root, d))
    )
