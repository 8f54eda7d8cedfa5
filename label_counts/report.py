"""
Report rendering for the terminal
"""

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from label_counts.models import LabelReport


NAME_WIDTH = 30


def build_table(report: LabelReport) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Label Name", style="cyan", min_width=NAME_WIDTH)
    table.add_column("Inbox Threads", justify="right", style="green")

    for name, count in report.rows:
        table.add_row(escape(name), f"{count:,}")

    return table


def render_report(report: LabelReport, console: Console) -> None:
    """Print the label table followed by the summary lines"""
    console.print(f"\nUsed {report.from_cache:,} threads from cache, {report.from_api:,} from API.\n")

    console.print(build_table(report))

    console.print(f"{'Inbox unread threads:':<{NAME_WIDTH}}{report.unread_count:,}")
    console.print(f"{'Inbox untagged threads:':<{NAME_WIDTH}}{report.untagged_count:,}")

    if report.failures:
        console.print(f"\n[red]{len(report.failures)} threads could not be fetched and were not counted:[/red]")
        for failure in report.failures:
            console.print(f"  - {failure.thread_id}: {escape(failure.error)}")
