"""Tests for the CLI module."""

import asyncio
import logging
from pathlib import Path

import pytest

from autonomous_agent.cli import build_parser, main
from autonomous_agent.plans.models import PlanStatus
from autonomous_agent.plans.store import PlanStore

from tests.helpers import make_plan


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch):
	"""Point the CLI config at a temp directory and return the plans DB path."""
	monkeypatch.setenv("AUTONOMOUS_AGENT_DATA_DIR", str(tmp_path / "data"))
	monkeypatch.setenv("AUTONOMOUS_AGENT_CONFIG_DIR", str(tmp_path / "config"))
	# Wide enough that rich tables never wrap
	monkeypatch.setenv("COLUMNS", "200")
	yield tmp_path / "data" / "plans.db"

	# main() installs handlers bound to this test's captured streams
	package_logger = logging.getLogger("autonomous_agent")
	for handler in list(package_logger.handlers):
		package_logger.removeHandler(handler)
		handler.close()


def _run(db_path: Path, fn):
	async def go():
		store = PlanStore(str(db_path))
		await store.init()
		try:
			return await fn(store)
		finally:
			await store.close()
	return asyncio.run(go())


def _seed(db_path: Path, **kwargs) -> str:
	return _run(db_path, lambda store: store.create_plan(make_plan(**kwargs)))


def _load(db_path: Path, plan_id: str):
	return _run(db_path, lambda store: store.get_plan(plan_id))


def _exit_code(argv: list[str]) -> int:
	with pytest.raises(SystemExit) as exc:
		main(argv)
	return exc.value.code


def test_parser_commands():
	parser = build_parser()

	args = parser.parse_args(["run", "Compare vendors", "--thread", "t1", "--preset", "economy"])
	assert args.request == "Compare vendors"
	assert args.thread == "t1"
	assert args.user == "cli"
	assert args.preset == "economy"

	args = parser.parse_args(["list", "--status", "active", "--limit", "5"])
	assert args.status == "active"
	assert args.limit == 5

	args = parser.parse_args(["cancel", "plan_x"])
	assert args.reason == "Cancelled by user"


def test_parser_rejects_unknown_status():
	with pytest.raises(SystemExit):
		build_parser().parse_args(["list", "--status", "paused"])


def test_no_command_prints_help(cli_env, capsys):
	assert _exit_code([]) == 1
	assert "autonomous-agent" in capsys.readouterr().out


def test_list_plans(cli_env, capsys):
	_seed(cli_env, title="Seeded plan")
	assert _exit_code(["list"]) == 0
	assert "Seeded plan" in capsys.readouterr().out


def test_show_markdown(cli_env, capsys):
	plan_id = _seed(cli_env)
	assert _exit_code(["show", plan_id, "--markdown"]) == 0
	out = capsys.readouterr().out
	assert out.startswith("# Vendor comparison")
	assert f"**Plan:** {plan_id}" in out


def test_show_missing_plan(cli_env, capsys):
	assert _exit_code(["show", "plan_missing"]) == 1
	assert "Plan not found" in capsys.readouterr().out


def test_cancel(cli_env, capsys):
	plan_id = _seed(cli_env)

	assert _exit_code(["cancel", plan_id, "--reason", "Out of scope"]) == 0
	plan = _load(cli_env, plan_id)
	assert plan.status == PlanStatus.CANCELLED
	assert plan.error_message == "Out of scope"

	assert _exit_code(["cancel", plan_id]) == 1
	assert "Cannot cancel" in capsys.readouterr().out


def test_recover_and_cleanup(cli_env, capsys):
	_seed(cli_env)
	assert _exit_code(["recover"]) == 0
	assert _exit_code(["cleanup", "--days", "30"]) == 0
	out = capsys.readouterr().out
	assert "Recovered stale tasks in 0 plan(s)" in out
	assert "Deleted 0 old plan(s)" in out


def test_resume_finished_plan_fails(cli_env, capsys):
	plan_id = _seed(cli_env)
	assert _exit_code(["cancel", plan_id]) == 0

	assert build_parser().parse_args(["resume", plan_id]).plan_id == plan_id
	assert _exit_code(["resume", plan_id]) == 1
	assert "Plan is already cancelled" in capsys.readouterr().out
