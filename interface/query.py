"""
Interactive terminal interface over a financial session.

Translates short plain-English commands into session calls: view a
statement, edit a raw cell (all three statements are recomputed), reset
to the loaded data, show an analysis domain, or print the narrative.

Usage (standalone)::

    python -m interface.query pinelands_construction
"""

import os
import re
import sys
import traceback

import pandas as pd

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from data.ingest import (
    fetch_financial_data,
    format_company_name,
    list_companies,
    load_financial_data,
)
from data.mappings import EDITABLE_COLUMNS, PERIOD_COLUMN
from interface.session import FinancialSession
from model.engine import load_config

# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------

console = Console()

STATEMENT_TITLES = {
    "income": "Income Statement",
    "cashflow": "Cash Flow Statement",
    "balance": "Balance Sheet",
}

DOMAIN_TITLES = {
    "liquidity": "Liquidity",
    "profitability": "Profitability",
    "valuation": "Valuation",
    "operatingLeverage": "Operating Leverage",
    "capitalStructure": "Capital Structure",
    "efficiency": "Efficiency",
}

# Series shown as percentages in tables
_PCT_SERIES = {"grossMargin", "operatingMargin", "netMargin", "roic", "equityRatio"}


# ---------------------------------------------------------------------------
# Session setup
# ---------------------------------------------------------------------------


def open_session(company: str, config: dict | None = None,
                 base_dir: str | None = None, base_url: str | None = None) -> dict:
    """Load *company* and return a fresh interactive context.

    The context is a plain dict owned by the caller; every handler
    receives it explicitly.
    """
    config = config or {}
    data_cfg = config.get("data", {}) or {}
    base_dir = base_dir or data_cfg.get("base_dir")
    base_url = base_url or data_cfg.get("base_url")

    console.print(f"\n[bold blue]Loading[/] {company}...")
    if base_url:
        dataset = fetch_financial_data(base_url, company, data_cfg.get("file_prefix"))
    else:
        dataset = load_financial_data(company, base_dir)

    session = FinancialSession(
        format_company_name(company),
        dataset,
        settings=config.get("model_parameters"),
        thresholds=config.get("narrative_thresholds"),
    )
    ctx = {
        "company": company,
        "session": session,
        "config": config,
        "base_dir": base_dir,
        "base_url": base_url,
    }
    _print_summary(ctx)
    return ctx


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def _fmt_number(val, pct: bool = False) -> str:
    """Format a number for display."""
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return "-"
    if isinstance(val, str):
        return val or "-"
    if pct:
        return f"{val:.2%}"
    if abs(val) >= 1e9:
        return f"${val / 1e9:,.1f}B"
    if abs(val) >= 1e6:
        return f"${val / 1e6:,.1f}M"
    if abs(val) >= 1e3:
        return f"${val / 1e3:,.1f}K"
    return f"{val:,.2f}"


def _print_summary(ctx: dict) -> None:
    """Print a concise headline panel for the live dataset."""
    session: FinancialSession = ctx["session"]
    result = session.analysis()
    liq = result["liquidity"]["latest"]
    prof = result["profitability"]["latest"]
    val = result["valuation"]["components"]

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(justify="right")
    table.add_row("Periods", str(len(result["profitability"]["series"]["months"])))
    table.add_row("Gross Margin (latest)", _fmt_number(prof["grossMargin"], pct=True))
    table.add_row("Net Margin (latest)", _fmt_number(prof["netMargin"], pct=True))
    table.add_row("Current Ratio", f"{liq['currentRatio']:.2f}x")
    table.add_row("DCF + Terminal", _fmt_number(val["intrinsicValue"]))
    if session.edits:
        table.add_row("Edits", f"[yellow]{len(session.edits)}[/]")

    console.print(Panel(table, title=f"[bold]{session.company}[/]", border_style="blue"))


def _display_dataframe(df: pd.DataFrame, title: str = "") -> None:
    """Render a pandas DataFrame as a rich Table."""
    if df.empty:
        console.print("[yellow]No data available.[/]")
        return

    table = Table(title=title, show_lines=True)
    table.add_column("", style="bold")  # index / row label

    for col in df.columns:
        table.add_column(str(col), justify="right")

    for idx, row in df.iterrows():
        table.add_row(str(idx), *[_fmt_number(v) for v in row])

    console.print(table)


def _display_domain(name: str, domain: dict) -> None:
    """Render one engine domain: series by month, then latest values."""
    series = dict(domain.get("series", {}))
    months = series.pop("months", [])
    if series:
        # Series can be shorter than the month axis (e.g. ROIC)
        n = max(len(v) for v in series.values())
        table = Table(title=f"{DOMAIN_TITLES.get(name, name)} — series", show_lines=True)
        table.add_column(PERIOD_COLUMN, style="bold")
        for col in series:
            table.add_column(col, justify="right")
        for i in range(n):
            label = str(months[i]) if i < len(months) else str(i)
            table.add_row(label, *[
                _fmt_number(v[i] if i < len(v) else None, pct=k in _PCT_SERIES)
                for k, v in series.items()
            ])
        console.print(table)

    latest = Table(title="Latest", show_lines=True)
    latest.add_column("Metric", style="bold")
    latest.add_column("Value", justify="right")
    for k, v in domain.get("latest", {}).items():
        latest.add_row(k, _fmt_number(v, pct=k in _PCT_SERIES))
    for k, v in (domain.get("components") or {}).items():
        if isinstance(v, dict):
            for sub, sub_v in v.items():
                latest.add_row(f"{k}.{sub}", _fmt_number(sub_v))
        else:
            latest.add_row(k, str(v) if isinstance(v, bool) else _fmt_number(v))
    console.print(latest)


# ---------------------------------------------------------------------------
# Query parser - simple keyword matching
# ---------------------------------------------------------------------------

_EDIT_RE = re.compile(
    r"^(?:edit|set|change|update)\s+"
    r"(income|cash\s*flow|cashflow|balance)(?:\s+(?:statement|sheet))?\s+"
    r"(?:row\s+)?(\S+)\s+"
    r"([A-Za-z_]+)\s+"
    r"(?:to\s+|=\s*)?(.+)$",
    re.IGNORECASE,
)


def _match_statement(text: str) -> str | None:
    t = text.lower()
    if re.search(r"\b(income|p&l|profit\s*(and|&)\s*loss)\b", t):
        return "income"
    if re.search(r"\b(cash\s*flow|cashflow)\b", t):
        return "cashflow"
    if re.search(r"\bbalance\b", t):
        return "balance"
    return None


def _match_column(statement: str, token: str) -> str | None:
    """Resolve a typed column name against the editable columns, case-insensitively."""
    wanted = token.lower().replace(" ", "_")
    for col in EDITABLE_COLUMNS.get(statement, ()):
        if col.lower() == wanted:
            return col
    return None


def _row_index(session: FinancialSession, statement: str, token: str) -> int | None:
    """A row number, or the index of a ``Month`` label."""
    if token.isdigit():
        return int(token)
    for i, month in enumerate(session.current.months(statement)):
        if str(month).lower() == token.lower():
            return i
    return None


def _classify_query(text: str) -> str:
    """Classify a query into a category using keyword matching."""
    t = text.lower().strip()

    if t in ("quit", "exit", "q", "bye"):
        return "exit"
    if t in ("help", "?", "commands"):
        return "help"

    if _EDIT_RE.match(t):
        return "edit"
    if re.search(r"\breset\b", t):
        return "reset"
    if re.search(r"\b(open|load)\b", t):
        return "open"
    if re.search(r"\b(companies|datasets)\b", t):
        return "companies"
    if re.search(r"\b(narrative|strategy|story)\b", t):
        return "narrative"
    if re.search(r"\b(context|summary|overview)\b", t):
        return "context"
    if re.search(r"\b(audit|issues|validate)\b", t):
        return "audit"
    if re.search(r"\bedits?\b|\bhistory\b", t):
        return "edits"

    # Analysis domains
    if re.search(r"\b(liquidity|working\s*capital|current\s*ratio|quick\s*ratio)\b", t):
        return "liquidity"
    if re.search(r"\b(profitability|margins?|roic)\b", t):
        return "profitability"
    if re.search(r"\b(valuation|dcf|free\s*cash|fcf|intrinsic|terminal)\b", t):
        return "valuation"
    if re.search(r"\b(operating\s*leverage|dol)\b", t):
        return "operatingLeverage"
    if re.search(r"\b(capital\s*structure|leverage|debt)\b", t):
        return "capitalStructure"
    if re.search(r"\b(efficiency|turnover)\b", t):
        return "efficiency"

    if _match_statement(t):
        return "statement"

    return "unknown"


# ---------------------------------------------------------------------------
# Query handlers
# ---------------------------------------------------------------------------


def _handle_help() -> None:
    """Print available commands."""
    help_text = """
[bold]Statements:[/]
  show income statement / cash flow / balance sheet
  show full balance sheet          (all periods)

[bold]Edits:[/]
  edit income 2 Revenue 125000     (row number or Month label)
  set balance Jan-2024 Loans to $4,500
  edits                            list applied edits
  reset                            back to the loaded data

[bold]Analysis:[/]
  liquidity / profitability / valuation
  operating leverage / capital structure / efficiency
  narrative                        rule-based commentary
  summary                          text context of the latest period
  audit                            non-numeric cells read as 0

[bold]Datasets:[/]
  companies                        list available datasets
  open <company>                   load another dataset

[bold]Other:[/]
  help          Show this message
  quit / exit   Leave interactive mode
"""
    console.print(Panel(help_text.strip(), title="[bold]Available Commands[/]",
                        border_style="cyan"))


def _handle_statement(text: str, ctx: dict) -> None:
    """Show a statement with line items as rows and periods as columns."""
    session: FinancialSession = ctx["session"]
    statement = _match_statement(text)
    df = session.current.to_frame(statement)
    if df.empty:
        console.print(f"[yellow]No {STATEMENT_TITLES[statement].lower()} data available.[/]")
        return

    if PERIOD_COLUMN in df.columns:
        df = df.set_index(PERIOD_COLUMN)
    df = df.T
    if not re.search(r"\b(full|all)\b", text.lower()):
        df = df[df.columns[-6:]]
    _display_dataframe(df, title=f"{session.company} — {STATEMENT_TITLES[statement]}")


def _handle_edit(text: str, ctx: dict) -> None:
    """Parse ``edit <statement> <row> <column> <value>`` and apply it."""
    session: FinancialSession = ctx["session"]
    m = _EDIT_RE.match(text.strip())
    statement = _match_statement(m.group(1))
    row = _row_index(session, statement, m.group(2))
    column = _match_column(statement, m.group(3))

    if row is None:
        console.print(f"[yellow]No row '{m.group(2)}' in the {STATEMENT_TITLES[statement].lower()}.[/]")
        return
    if column is None:
        allowed = ", ".join(EDITABLE_COLUMNS[statement])
        console.print(f"[yellow]'{m.group(3)}' is not editable. Editable: {allowed}[/]")
        return

    if session.edit_cell(statement, row, column, m.group(4)):
        month = session.current.months(statement)[row]
        value = session.current.statement(statement)[row][column]
        console.print(f"Set [bold]{column}[/] for {month} to {_fmt_number(value)}; "
                      "statements recomputed.")
        _print_summary(ctx)
    else:
        console.print("[yellow]Edit not applied.[/]")


def _handle_edits(ctx: dict) -> None:
    session: FinancialSession = ctx["session"]
    if not session.edits:
        console.print("[dim]No edits applied.[/]")
        return
    table = Table(title="Applied Edits", show_lines=True)
    for col in ("Statement", "Row", "Column", "Input"):
        table.add_column(col)
    for statement, row, column, text in session.edits:
        table.add_row(statement, str(row), column, text)
    console.print(table)


def _handle_reset(ctx: dict) -> None:
    ctx["session"].reset()
    console.print("[green]Edits discarded; original data restored.[/]")
    _print_summary(ctx)


def _handle_domain(name: str, ctx: dict) -> None:
    result = ctx["session"].analysis()
    _display_domain(name, result[name])


def _handle_narrative(ctx: dict) -> None:
    session: FinancialSession = ctx["session"]
    console.print(Panel(session.narrative(), title="[bold]Strategy & Narrative[/]",
                        border_style="green"))


def _handle_context(ctx: dict) -> None:
    console.print(ctx["session"].context_text())


def _handle_audit(ctx: dict) -> None:
    issues = ctx["session"].audit()
    if not issues:
        console.print("[green]All recognised cells are numeric.[/]")
        return
    table = Table(title="Cells read as 0", show_lines=True)
    for col in ("Statement", "Row", PERIOD_COLUMN, "Column", "Value"):
        table.add_column(col)
    for issue in issues:
        table.add_row(issue.statement, str(issue.row), issue.month, issue.column, issue.value)
    console.print(table)


def _handle_companies(ctx: dict) -> None:
    names = list_companies(ctx.get("base_dir"))
    if not names:
        console.print("[yellow]No datasets found.[/]")
        return
    for name in names:
        marker = " [green](open)[/]" if name == ctx["company"] else ""
        console.print(f"  {name}{marker}")


def _handle_open(text: str, ctx: dict) -> None:
    m = re.search(r"\b(?:open|load)\s+(\S+)", text, re.IGNORECASE)
    if not m:
        console.print("[yellow]Try: open <company>[/]")
        return
    new_ctx = open_session(m.group(1), ctx["config"], ctx.get("base_dir"), ctx.get("base_url"))
    ctx.clear()
    ctx.update(new_ctx)


# ---------------------------------------------------------------------------
# Interactive loop
# ---------------------------------------------------------------------------


def handle_query(query: str, ctx: dict) -> bool:
    """Dispatch one command.  Returns ``False`` when the user asked to exit."""
    category = _classify_query(query)

    if category == "exit":
        return False
    elif category == "help":
        _handle_help()
    elif category == "edit":
        _handle_edit(query, ctx)
    elif category == "edits":
        _handle_edits(ctx)
    elif category == "reset":
        _handle_reset(ctx)
    elif category == "open":
        _handle_open(query, ctx)
    elif category == "companies":
        _handle_companies(ctx)
    elif category == "narrative":
        _handle_narrative(ctx)
    elif category == "context":
        _handle_context(ctx)
    elif category == "audit":
        _handle_audit(ctx)
    elif category in DOMAIN_TITLES:
        _handle_domain(category, ctx)
    elif category == "statement":
        _handle_statement(query, ctx)
    else:
        console.print("[yellow]I didn't understand that. Type 'help' for "
                      "available commands.[/]")
    return True


def interactive_loop(ctx: dict) -> None:
    """Run the interactive query loop."""
    console.print(f"\n[bold green]Interactive mode for {ctx['session'].company}[/]")
    console.print("Type a command. Type [bold]help[/] for options, "
                  "[bold]quit[/] to exit.\n")

    while True:
        try:
            query = console.input(f"[bold blue]{ctx['company']}>[/] ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\nGoodbye!")
            break

        if not query:
            continue

        try:
            if not handle_query(query, ctx):
                console.print("Goodbye!")
                break
        except Exception as exc:
            console.print(f"[red]Error:[/] {exc}")
            console.print(f"[dim]{traceback.format_exc()}[/]")


# ---------------------------------------------------------------------------
# CLI entry point: python -m interface.query <company>
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for the interactive query interface."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Interactive three-statement dashboard",
    )
    parser.add_argument("company", help="Dataset folder name (e.g. pinelands_construction)")
    parser.add_argument("--data-dir", default=None, help="Parent folder of company datasets")
    args = parser.parse_args()

    ctx = open_session(args.company, load_config(), base_dir=args.data_dir)
    interactive_loop(ctx)


if __name__ == "__main__":
    main()
