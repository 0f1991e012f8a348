"""Rich table of stored plans."""

from typing import Optional

from rich.console import Console
from rich.table import Table

from ..plans.models import TaskPlan
from .utils import format_timestamp, plan_status_markup, truncate


def render_plan_list(plans: list[TaskPlan], console: Optional[Console] = None) -> None:
	"""Render plans newest first."""
	console = console or Console()

	if not plans:
		console.print("[dim]No plans found.[/dim]")
		return

	table = Table(title=f"Plans ({len(plans)})")
	table.add_column("ID", style="cyan")
	table.add_column("Title")
	table.add_column("Status", justify="center")
	table.add_column("Progress", justify="right")
	table.add_column("LLM Calls", justify="right")
	table.add_column("Tokens", justify="right")
	table.add_column("Updated")

	for plan in plans:
		stats = plan.get_stats()
		table.add_row(
			plan.id,
			truncate(plan.title, 40),
			plan_status_markup(plan.status),
			f"{stats.progress_percent:.0f}%",
			str(plan.budget_used.llm_calls),
			str(plan.budget_used.tokens_used),
			format_timestamp(plan.updated_at),
		)

	console.print(table)
