"""Shared utilities for visualizer views."""

from datetime import datetime
from typing import Optional

from ..plans.models import PlanStatus

PLAN_STATUS_STYLES = {
	PlanStatus.ACTIVE: "yellow",
	PlanStatus.COMPLETED: "green",
	PlanStatus.CANCELLED: "dim",
	PlanStatus.FAILED: "red",
}


def format_timestamp(iso_str: Optional[str]) -> str:
	"""Format an ISO timestamp as relative time (e.g. '2m ago') or absolute."""
	if not iso_str:
		return "-"
	try:
		dt = datetime.fromisoformat(iso_str)
		total_secs = int((datetime.now() - dt).total_seconds())

		if total_secs < 0:
			return iso_str[:19]
		if total_secs < 60:
			return f"{total_secs}s ago"
		if total_secs < 3600:
			return f"{total_secs // 60}m ago"
		if total_secs < 86400:
			return f"{total_secs // 3600}h ago"
		return f"{total_secs // 86400}d ago"
	except (ValueError, TypeError):
		return str(iso_str)[:19]


def truncate(text: Optional[str], max_len: int = 60) -> str:
	"""Shorten text to one table-friendly line."""
	if not text:
		return ""
	line = " ".join(text.split())
	if len(line) <= max_len:
		return line
	return line[:max_len - 3] + "..."


def plan_status_markup(status: PlanStatus) -> str:
	"""Return the plan status wrapped in its Rich style."""
	style = PLAN_STATUS_STYLES.get(status, "white")
	return f"[{style}]{status.value}[/{style}]"


def usage_bar(used: float, limit: float, width: int = 20) -> str:
	"""Render a used/limit ratio as a coloured text bar."""
	pct = min(used / limit, 1.0) if limit else 0.0
	filled = round(pct * width)
	style = "green" if pct < 0.5 else ("yellow" if pct < 0.75 else "red")
	return f"[{style}]{'█' * filled}[/{style}][dim]{'░' * (width - filled)}[/dim] {pct * 100:.0f}%"
