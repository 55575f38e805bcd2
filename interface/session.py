"""
Per-session financial context.

A :class:`FinancialSession` owns one loaded company: the untouched
snapshot taken at load time and the live dataset that edits replace.
Create one per user session (or request) and pass it explicitly; nothing
here is module-level state.
"""

import logging

from data.ingest import DataIssue, audit_dataset
from data.mappings import EDITABLE_COLUMNS
from model.engine import run_finance_engine
from model.statements import Dataset, apply_edit, is_editable
from output.narrative import build_financial_context, compute_narrative_metrics, generate_narrative

logger = logging.getLogger(__name__)


class FinancialSession:
    """Live dataset plus its original snapshot for one viewer.

    Parameters
    ----------
    company : str
        Display name of the loaded company.
    dataset : Dataset
        Derived dataset as returned by ingestion.
    settings : dict, optional
        ``model_parameters`` passed to the finance engine.
    thresholds : dict, optional
        Narrative threshold table.
    """

    def __init__(self, company: str, dataset: Dataset,
                 settings: dict | None = None, thresholds: dict | None = None):
        self.company = company
        self.original = dataset.copy()
        self.current = dataset.copy()
        self.settings = dict(settings or {})
        self.thresholds = thresholds
        self.edits: list[tuple[str, int, str, str]] = []

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def edit_cell(self, statement: str, row_index: int, column: str, text: str) -> bool:
        """Apply one edit if *column* is editable and the row exists.

        Returns ``True`` when the edit was applied.
        """
        if not is_editable(statement, column):
            allowed = ", ".join(EDITABLE_COLUMNS.get(statement, ())) or "none"
            logger.warning(
                "%s: %s.%s is not editable (editable: %s)", self.company, statement, column, allowed,
            )
            return False
        rows = self.current.statement(statement) or []
        if not 0 <= row_index < len(rows):
            logger.warning(
                "%s: %s has no row %d (%d rows)", self.company, statement, row_index, len(rows),
            )
            return False

        self.current = apply_edit(self.current, statement, row_index, column, text)
        self.edits.append((statement, row_index, column, text))
        return True

    def reset(self) -> None:
        """Discard all edits and return to the snapshot taken at load time."""
        self.current = self.original.copy()
        self.edits.clear()
        logger.info("%s: reset to original dataset", self.company)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analysis(self) -> dict:
        return run_finance_engine(self.current, self.settings)

    def narrative_metrics(self) -> dict:
        return compute_narrative_metrics(self.current)

    def narrative(self) -> str:
        return generate_narrative(self.narrative_metrics(), self.thresholds)

    def context_text(self) -> str:
        return build_financial_context(self.company, self.current)

    def audit(self) -> list[DataIssue]:
        """Cells of the live dataset that currently read as 0.

        Once an edit has been applied the dataset is in recompute mode,
        which reads formatted numbers such as ``"$1,200"`` in full.
        """
        return audit_dataset(self.current, recompute=bool(self.edits))
