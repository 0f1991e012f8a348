"""CLI for autonomous-agent: run, resume, show, list, cancel, recover, cleanup and serve commands."""

import argparse
import asyncio
import sys
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console

from .config import Config, load_config
from .errors import OrchestrationError
from .logging_config import setup_logging
from .plans.models import PlanStatus
from .plans.store import PlanStore

console = Console()


async def _open_store(config: Config) -> PlanStore:
	store = PlanStore(str(config.plans_db_path))
	await store.init()
	return store


def _progress_callbacks():
	"""Callbacks that print orchestration progress to the console."""
	from .orchestrator.events import OrchestratorCallbacks

	def plan_created(plan):
		console.print(f"[bold cyan]Plan created:[/bold cyan] {plan.title} ({len(plan.tasks)} tasks)")

	def task_started(task):
		console.print(f"  [yellow]>[/yellow] Task {task.id} [{task.type.value}] {task.description}")

	def task_completed(task, result):
		style = {"done": "green", "needs_review": "magenta", "skipped": "dim"}.get(task.status.value, "red")
		line = f"    [{style}]{task.status.value}[/{style}]"
		if result.confidence is not None:
			line += f" ({result.confidence:.0f}%)"
		if result.error:
			line += f" - {result.error}"
		console.print(line)

	def tool_start(task, tool_name):
		console.print(f"    [dim]tool {tool_name} started[/dim]")

	def budget_warning(event):
		console.print(f"[yellow]Budget {event.level} warning:[/yellow] {event.message}")

	def budget_exceeded(event):
		console.print(f"[red]Budget exceeded:[/red] {event.message}")

	def error(message):
		console.print(f"[red]Error:[/red] {message}")

	return OrchestratorCallbacks(
		on_plan_created=plan_created,
		on_task_started=task_started,
		on_task_completed=task_completed,
		on_tool_start=tool_start,
		on_budget_warning=budget_warning,
		on_budget_exceeded=budget_exceeded,
		on_error=error,
	)


async def _run(args: argparse.Namespace, config: Config) -> int:
	from .llm.router import LLMRouter
	from .orchestrator.planner import PlanningContext
	from .orchestrator.runner import Orchestrator
	from .orchestrator.toolbox import ToolRegistry
	from .visualizer.plan_progress import render_plan_summary

	if args.preset:
		config.model_preset = args.preset

	store = await _open_store(config)
	router = LLMRouter()
	try:
		orchestrator = Orchestrator(
			store,
			router,
			tools=ToolRegistry(),
			callbacks=_progress_callbacks(),
			config=config,
		)
		await orchestrator.recover()

		result = await orchestrator.create_and_execute(
			args.request,
			thread_id=args.thread,
			user_id=args.user,
			category_slug=args.category,
			context=PlanningContext(category=args.category),
		)

		if result.plan_id:
			plan = await store.get_plan(result.plan_id)
			if plan:
				render_plan_summary(plan, console=console)

		return 0 if result.success else 1
	finally:
		await router.close()
		await store.close()


def cmd_run(args: argparse.Namespace) -> None:
	"""Plan and execute a request autonomously."""
	config = load_config()
	sys.exit(asyncio.run(_run(args, config)))


async def _resume(args: argparse.Namespace, config: Config) -> int:
	from .llm.router import LLMRouter
	from .orchestrator.runner import Orchestrator
	from .orchestrator.toolbox import ToolRegistry
	from .visualizer.plan_progress import render_plan_summary

	store = await _open_store(config)
	router = LLMRouter()
	try:
		orchestrator = Orchestrator(
			store,
			router,
			tools=ToolRegistry(),
			callbacks=_progress_callbacks(),
			config=config,
		)
		await orchestrator.recover()

		result = await orchestrator.execute_plan(args.plan_id)
		if not result.success and result.error:
			console.print(f"[red]Resume failed:[/red] {result.error}")

		plan = await store.get_plan(args.plan_id)
		if plan:
			render_plan_summary(plan, console=console)

		return 0 if result.success else 1
	finally:
		await router.close()
		await store.close()


def cmd_resume(args: argparse.Namespace) -> None:
	"""Continue an active plan, e.g. one left behind by a crashed process."""
	sys.exit(asyncio.run(_resume(args, load_config())))


async def _show(args: argparse.Namespace, config: Config) -> int:
	from .visualizer.plan_progress import render_plan_progress, render_plan_summary

	store = await _open_store(config)
	try:
		plan = await store.get_plan(args.plan_id)
	finally:
		await store.close()

	if plan is None:
		console.print(f"[red]Plan not found:[/red] {args.plan_id}")
		return 1

	if args.markdown:
		print(plan.to_markdown())
	elif args.summary:
		render_plan_summary(plan, console=console)
	else:
		render_plan_progress(plan, console=console)
	return 0


def cmd_show(args: argparse.Namespace) -> None:
	"""Show one plan."""
	sys.exit(asyncio.run(_show(args, load_config())))


async def _list(args: argparse.Namespace, config: Config) -> int:
	from .visualizer.plan_list import render_plan_list

	store = await _open_store(config)
	try:
		plans = await store.list_plans(
			status=PlanStatus(args.status) if args.status else None,
			thread_id=args.thread,
		)
	finally:
		await store.close()

	render_plan_list(plans[:args.limit], console=console)
	return 0


def cmd_list(args: argparse.Namespace) -> None:
	"""List plans."""
	sys.exit(asyncio.run(_list(args, load_config())))


async def _cancel(args: argparse.Namespace, config: Config) -> int:
	store = await _open_store(config)
	try:
		await store.cancel_plan(args.plan_id, args.reason)
	except OrchestrationError as e:
		console.print(f"[red]Cannot cancel:[/red] {e}")
		return 1
	finally:
		await store.close()

	console.print(f"Cancelled plan {args.plan_id}")
	return 0


def cmd_cancel(args: argparse.Namespace) -> None:
	"""Cancel an active plan."""
	sys.exit(asyncio.run(_cancel(args, load_config())))


async def _recover(args: argparse.Namespace, config: Config) -> int:
	store = await _open_store(config)
	try:
		recovered = await store.recover_active_plans(grace_minutes=args.grace or config.recovery_grace_minutes)
	finally:
		await store.close()

	console.print(f"Recovered stale tasks in {recovered} plan(s)")
	return 0


def cmd_recover(args: argparse.Namespace) -> None:
	"""Skip tasks orphaned in running by a crashed process."""
	sys.exit(asyncio.run(_recover(args, load_config())))


async def _cleanup(args: argparse.Namespace, config: Config) -> int:
	store = await _open_store(config)
	try:
		deleted = await store.cleanup_old_plans(days_old=args.days or config.retention_days)
	finally:
		await store.close()

	console.print(f"Deleted {deleted} old plan(s)")
	return 0


def cmd_cleanup(args: argparse.Namespace) -> None:
	"""Delete terminal plans past the retention window."""
	sys.exit(asyncio.run(_cleanup(args, load_config())))


def cmd_serve(args: argparse.Namespace) -> None:
	"""Run the MCP server (stdio transport). Stale running tasks are recovered at startup."""
	from .server import create_server
	create_server(load_config()).run()


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="autonomous-agent",
		description="Autonomous planner/executor/checker loop over task DAGs",
	)
	parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
	subparsers = parser.add_subparsers(dest="command")

	# run
	run_parser = subparsers.add_parser("run", help="Plan and execute a request")
	run_parser.add_argument("request", help="What to accomplish")
	run_parser.add_argument("--thread", default="cli", help="Thread ID (default: cli)")
	run_parser.add_argument("--user", default="cli", help="User ID (default: cli)")
	run_parser.add_argument("--category", default=None, help="Category slug")
	run_parser.add_argument("--preset", default=None, help="Model preset (default, quality, economy, compliance)")
	run_parser.set_defaults(func=cmd_run)

	# show
	show_parser = subparsers.add_parser("show", help="Show a plan")
	show_parser.add_argument("plan_id", help="Plan ID")
	show_parser.add_argument("--summary", action="store_true", help="Show summary panel instead of tree")
	show_parser.add_argument("--markdown", action="store_true", help="Print as markdown")
	show_parser.set_defaults(func=cmd_show)

	# list
	list_parser = subparsers.add_parser("list", help="List plans")
	list_parser.add_argument("--status", choices=[s.value for s in PlanStatus], default=None)
	list_parser.add_argument("--thread", default=None, help="Filter by thread ID")
	list_parser.add_argument("--limit", type=int, default=50, help="Max results")
	list_parser.set_defaults(func=cmd_list)

	# cancel
	cancel_parser = subparsers.add_parser("cancel", help="Cancel an active plan")
	cancel_parser.add_argument("plan_id", help="Plan ID")
	cancel_parser.add_argument("--reason", default="Cancelled by user", help="Reason recorded on the plan")
	cancel_parser.set_defaults(func=cmd_cancel)

	# resume
	resume_parser = subparsers.add_parser("resume", help="Continue an active plan")
	resume_parser.add_argument("plan_id", help="Plan ID")
	resume_parser.set_defaults(func=cmd_resume)

	# recover
	recover_parser = subparsers.add_parser("recover", help="Skip tasks left running by a crash")
	recover_parser.add_argument("--grace", type=int, default=None, help="Grace period in minutes")
	recover_parser.set_defaults(func=cmd_recover)

	# cleanup
	cleanup_parser = subparsers.add_parser("cleanup", help="Delete old finished plans")
	cleanup_parser.add_argument("--days", type=int, default=None, help="Retention in days")
	cleanup_parser.set_defaults(func=cmd_cleanup)

	# serve
	serve_parser = subparsers.add_parser("serve", help="Run MCP server (stdio)")
	serve_parser.set_defaults(func=cmd_serve)

	return parser


def main(argv: Optional[list[str]] = None) -> None:
	"""CLI entry point."""
	load_dotenv()
	parser = build_parser()
	args = parser.parse_args(argv)

	if not args.command:
		parser.print_help()
		sys.exit(1)

	config = load_config()
	setup_logging(level=args.log_level, log_dir=config.log_dir)

	args.func(args)
