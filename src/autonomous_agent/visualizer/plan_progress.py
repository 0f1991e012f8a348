"""Rich views for plan progress visualization."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

from ..plans.models import TaskPlan, TaskStatus
from .utils import format_timestamp, plan_status_markup, truncate, usage_bar

STATUS_ICONS = {
	TaskStatus.PENDING: "[dim][ ][/dim]",
	TaskStatus.RUNNING: "[yellow][~][/yellow]",
	TaskStatus.DONE: "[green][x][/green]",
	TaskStatus.FAILED: "[red][!][/red]",
	TaskStatus.SKIPPED: "[dim][-][/dim]",
	TaskStatus.NEEDS_REVIEW: "[magenta][?][/magenta]",
}


def render_plan_progress(plan: TaskPlan, console: Optional[Console] = None) -> None:
	"""Render a plan as a Rich Tree of tasks with their outcomes."""
	console = console or Console()
	stats = plan.get_stats()

	tree = Tree(
		f"[bold]{plan.title}[/bold]  "
		f"[dim]({stats.total_tasks - stats.pending_tasks - stats.running_tasks}/{stats.total_tasks} tasks, "
		f"{stats.progress_percent:.0f}%)[/dim]"
	)

	for task in plan.tasks:
		icon = STATUS_ICONS.get(task.status, "[ ]")
		label = f"{icon} {task.id}. [cyan]{task.type.value}[/cyan] {task.description}"
		if task.dependencies:
			label += f" [dim](after {', '.join(str(d) for d in task.dependencies)})[/dim]"
		if task.priority != 1:
			label += f" [dim]P{task.priority}[/dim]"
		branch = tree.add(label)

		if task.confidence_score is not None:
			branch.add(f"[dim]confidence:[/dim] {task.confidence_score:.0f}%")
		if task.status == TaskStatus.NEEDS_REVIEW and task.review_notes:
			branch.add(f"[magenta]review:[/magenta] {truncate(task.review_notes, 80)}")
		if task.error:
			branch.add(f"[red]error:[/red] {truncate(task.error, 80)}")

	console.print(tree)


def render_plan_summary(plan: TaskPlan, console: Optional[Console] = None) -> None:
	"""Render a summary panel with status, budget usage and outcome."""
	console = console or Console()
	stats = plan.get_stats()
	limits = plan.budget_limits
	used = plan.budget_used

	lines = [
		f"[bold]Title:[/bold] {plan.title}",
		f"[bold]Status:[/bold] {plan_status_markup(plan.status)}",
		f"[bold]Thread:[/bold] {plan.thread_id}  [bold]User:[/bold] {plan.user_id}",
		f"[bold]Created:[/bold] {format_timestamp(plan.created_at)}",
		"",
		f"[bold]Tasks:[/bold] {stats.completed_tasks} done, {stats.needs_review_tasks} review, "
		f"{stats.skipped_tasks} skipped, {stats.failed_tasks} failed, {stats.pending_tasks} pending",
		f"[bold]Average confidence:[/bold] {stats.average_confidence:.1f}%",
		"",
		"[bold]Budget:[/bold]",
		f"  LLM calls    {used.llm_calls:>8}/{limits.max_llm_calls:<8} {usage_bar(used.llm_calls, limits.max_llm_calls)}",
		f"  Tokens       {used.tokens_used:>8}/{limits.max_tokens:<8} {usage_bar(used.tokens_used, limits.max_tokens)}",
		f"  Web searches {used.web_searches:>8}/{limits.max_web_searches:<8} "
		f"{usage_bar(used.web_searches, limits.max_web_searches)}",
	]

	if plan.original_request:
		lines.extend(["", "[bold]Request:[/bold]", truncate(plan.original_request, 200)])

	if plan.summary:
		lines.extend(["", "[bold]Summary:[/bold]", plan.summary])

	if plan.error_message:
		lines.extend(["", f"[bold red]Error:[/bold red] {plan.error_message}"])

	console.print(Panel("\n".join(lines), title=f"Plan: {plan.id}", border_style="cyan"))
