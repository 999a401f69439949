"""
Utility functions for the skiprate CLI
"""

import csv
import io
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.panel import Panel

from .errors import BlockProductionError
from .models import FetchResult, PerformanceCategory, ValidatorRecord

logger = logging.getLogger(__name__)


def format_output(data: Any, format_type: str, output_path: Optional[str], console: Console):
    """Format and output data"""
    if format_type == 'csv':
        formatted_data = _rows_to_csv(data if isinstance(data, list) else [data])
    else:
        # Default to JSON
        formatted_data = json.dumps(data, indent=2, default=str)

    if output_path:
        try:
            with open(output_path, 'w') as f:
                f.write(formatted_data)
            console.print(f"[green]Output saved to {output_path}[/green]")
        except OSError as e:
            console.print(f"[red]Error saving output to {output_path}: {str(e)}[/red]")
            logger.error(f"Failed to write {output_path}: {e}")
    elif format_type == 'json':
        console.print_json(formatted_data)
    else:
        console.print(formatted_data, end="", markup=False, highlight=False)


def _rows_to_csv(rows: Sequence[Dict[str, Any]]) -> str:
    """Convert a list of flat dictionaries to CSV text"""
    output = io.StringIO()
    if not rows:
        return ""
    writer = csv.DictWriter(output, fieldnames=list(rows[0].keys()), lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue()


def record_row(record: ValidatorRecord) -> Dict[str, Any]:
    """Flat row for one validator, used by the json and csv outputs"""
    category = PerformanceCategory.for_record(record)
    return {
        "identity": record.identity,
        "assigned_slots": record.assigned_slots,
        "produced_blocks": record.produced_blocks,
        "missed_slots": record.missed_slots,
        "skip_rate_percent": round(record.skip_rate_percent, 4),
        "category": category.value,
    }


def handle_error(error: BlockProductionError, console: Console):
    """Render a library error as a red panel with its debug hints"""
    lines = [f"[bold red]Error: {error.message}[/bold red]"]
    hints = [h for h in error.debug_hints() if h]
    if hints:
        lines.append("")
        lines.extend(f"[yellow]- {hint}[/yellow]" for hint in hints)
    console.print(Panel("\n".join(lines), title=f"{type(error).__name__} ({error.category().value})", expand=False))
    logger.error(f"{type(error).__name__}: {error.message}")


def problematic_validators(result: FetchResult, limit: int = 10) -> List[Tuple[ValidatorRecord, float, float]]:
    """
    Validators above 1% skip rate ranked by impact.

    Returns:
        (record, impact score, network share percent) tuples, highest impact first,
        where impact = skip rate x share of all assigned slots
    """
    total_slots = result.statistics.total_assigned_slots
    if total_slots == 0:
        return []
    ranked = []
    for record in result.validators:
        if record.skip_rate_percent > 1.0 and record.assigned_slots > 0:
            share = record.assigned_slots / total_slots * 100.0
            ranked.append((record, record.skip_rate_percent * share, share))
    ranked.sort(key=lambda item: item[1], reverse=True)
    return ranked[:limit]


def skip_rate_style(skip_rate: float) -> str:
    if skip_rate >= 50.0:
        return "red"
    if skip_rate >= 20.0:
        return "yellow"
    if skip_rate >= 5.0:
        return "magenta"
    return "white"


def percent_of(part: int, whole: int) -> float:
    return part / whole * 100.0 if whole else 0.0


def truncate_string(s: str, max_length: int = 50) -> str:
    """Truncate a string to a maximum length"""
    if len(s) <= max_length:
        return s
    return s[:max_length - 3] + "..."
