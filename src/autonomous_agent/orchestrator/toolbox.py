"""
Toolbox - Registry of opaque tools the executor can dispatch to.

Tools receive an explicit ToolContext naming the plan, task and owner
they run for. The registry is an ordinary object built once per process
and injected into the executor.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable, Optional, Protocol

from ..plans.models import Task, TaskType

logger = logging.getLogger(__name__)

# Well-known tool names
DOCUMENT_TOOL = "document_generation"
IMAGE_TOOL = "image_generation"
WEB_SEARCH_TOOL = "web_search"

DOCUMENT_KEYWORDS = (
	"document", "report", "word document", "pdf", "docx", "memo", "letter",
)
IMAGE_KEYWORDS = (
	"image", "infographic", "visual", "diagram", "chart", "illustration", "picture", "graphic",
)
WEB_SEARCH_KEYWORDS = ("web search", "internet", "online", "latest news")

# Task types that name their tool outright
TYPE_TOOLS = {
	TaskType.SEARCH: WEB_SEARCH_TOOL,
}


@dataclass
class ToolContext:
	"""Who a tool call runs for."""
	plan_id: str
	task_id: int
	thread_id: str
	user_id: str
	category_slug: Optional[str] = None


@dataclass
class ToolResult:
	"""Outcome of a tool call."""
	success: bool
	content: str = ""
	error: Optional[str] = None
	artifacts: list[dict[str, Any]] = field(default_factory=list)

	def to_json(self) -> str:
		return json.dumps(asdict(self))


class Tool(Protocol):
	"""A tool the executor can call."""

	name: str
	display_name: str

	async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
		...


class ToolRegistry:
	"""
	Named tool lookup.

	Usage:
		registry = ToolRegistry(loaders=[load_my_tools])
		registry.init()
		tool = registry.get("web_search")
	"""

	def __init__(self, loaders: Optional[Iterable[Callable[["ToolRegistry"], None]]] = None):
		"""
		Initialize the registry.

		Args:
			loaders: Callables run once by init(), each registering tools
		"""
		self._tools: dict[str, Tool] = {}
		self._loaders = list(loaders or [])
		self._initialized = False

	def init(self) -> None:
		"""Run the loaders. Safe to call more than once."""
		if self._initialized:
			return
		for loader in self._loaders:
			loader(self)
		self._initialized = True
		logger.info(f"Tool registry ready with {len(self._tools)} tools: {sorted(self._tools)}")

	@property
	def initialized(self) -> bool:
		return self._initialized

	def register(self, tool: Tool) -> None:
		if tool.name in self._tools:
			logger.warning(f"Replacing registered tool: {tool.name}")
		self._tools[tool.name] = tool

	def get(self, name: str) -> Optional[Tool]:
		return self._tools.get(name)

	def has(self, name: str) -> bool:
		return name in self._tools

	def names(self) -> list[str]:
		return sorted(self._tools)

	async def execute(self, ctx: ToolContext, name: str, args_json: str) -> str:
		"""
		Run a tool from JSON arguments and return its JSON result.

		Unknown tools and malformed arguments yield a failed result.
		"""
		tool = self.get(name)
		if tool is None:
			return ToolResult(success=False, error=f"Unknown tool: {name}").to_json()

		try:
			args = json.loads(args_json) if args_json else {}
		except json.JSONDecodeError as e:
			return ToolResult(success=False, error=f"Invalid tool arguments: {e}").to_json()

		result = await tool.execute(ctx, args)
		return result.to_json()


def _keyword_score(text: str, keywords: tuple[str, ...]) -> int:
	return sum(1 for keyword in keywords if keyword in text)


def detect_tool(task: Task, registry: Optional[ToolRegistry]) -> Optional[str]:
	"""
	Choose a tool for a task, or None for plain LLM execution.

	Order: explicit task type, then document vs image keyword scores
	(ties go to document), then web-search keywords. Only registered
	tools are chosen.
	"""
	if registry is None:
		return None

	explicit = TYPE_TOOLS.get(task.type)
	if explicit and registry.has(explicit):
		return explicit

	text = f"{task.target} {task.description}".lower()

	candidates = []
	if registry.has(DOCUMENT_TOOL):
		candidates.append((_keyword_score(text, DOCUMENT_KEYWORDS), 1, DOCUMENT_TOOL))
	if registry.has(IMAGE_TOOL):
		candidates.append((_keyword_score(text, IMAGE_KEYWORDS), 0, IMAGE_TOOL))

	if candidates:
		score, _, name = max(candidates)
		if score > 0:
			return name

	if registry.has(WEB_SEARCH_TOOL) and _keyword_score(text, WEB_SEARCH_KEYWORDS) > 0:
		return WEB_SEARCH_TOOL

	return None
