"""
Console output with Rich formatting.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from charity_oracle.models import CharityRecord, ScoreBreakdown

custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "success": "green",
})


class ConsoleOutput:
    """Console output with Rich formatting."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(theme=custom_theme)

    def print(self, text: str = "", **kwargs):
        self.console.print(text, **kwargs)

    def print_error(self, text: str):
        self.console.print(f"[error]Error:[/error] {text}")

    def print_success(self, text: str):
        self.console.print(f"[success]Success:[/success] {text}")

    def print_warning(self, text: str):
        self.console.print(f"[warning]Warning:[/warning] {text}")

    def print_info(self, text: str):
        self.console.print(f"[info]Info:[/info] {text}")

    def print_record(self, record: CharityRecord) -> None:
        table = Table(title=f"Charity {record.charity_id}", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Name", record.name)
        table.add_row("Description", record.description)
        table.add_row("Evidence ref", record.evidence_ref or "-")
        table.add_row("Wallet", record.wallet)
        table.add_row("Status", record.status.name)
        table.add_row("Score", str(record.score))
        table.add_row("Registered", str(record.registered_at))
        if record.decided_at:
            table.add_row("Decided", f"{record.decided_at} by {record.decided_by}")
        table.add_row("Donations", f"{record.total_donations} from {record.donor_count} donors")
        table.add_row("Funding goal", str(record.funding_goal))
        table.add_row("Active", "yes" if record.is_active else "no")
        if record.evidence_urls:
            table.add_row("On-chain evidence", "\n".join(record.evidence_urls))
        self.console.print(table)

    def print_breakdown(self, breakdown: ScoreBreakdown) -> None:
        table = Table(title="Score breakdown")
        table.add_column("Signal", style="bold")
        table.add_column("Result")
        table.add_row("Text analysis", f"{breakdown.base_score:g}")
        table.add_row("Online presence", "yes (+10)" if breakdown.online_presence else "no")
        table.add_row("Document reachable", "yes (+10)" if breakdown.document_valid else "no")
        if breakdown.image_score:
            validity = "valid" if breakdown.image_valid else "not valid"
            table.add_row("Images", f"{breakdown.image_score:g} ({validity})")
        else:
            table.add_row("Images", "none")
        table.add_row("Flags", "\n".join(breakdown.flags) if breakdown.flags else "none")
        verdict = "[success]approve[/success]" if breakdown.approved else "[error]reject[/error]"
        table.add_row("Final score", f"{breakdown.final_score} -> {verdict}")
        self.console.print(table)
        if breakdown.reasoning:
            self.console.print(f"[dim]{breakdown.reasoning}[/dim]")
        for note in breakdown.notes:
            self.print_warning(note)

    def print_evidence(self, entries: Dict[str, List[str]]) -> None:
        table = Table(title="Evidence")
        table.add_column("Key", style="bold")
        table.add_column("URLs")
        for key in sorted(entries):
            table.add_row(key, "\n".join(entries[key]) or "-")
        self.console.print(table)
