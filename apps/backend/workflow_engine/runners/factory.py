"""Runner factory mapping node type to a concrete runner, and the dispatcher."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type

from shared.models import NodeInstance, NodeType, node_kind
from workflow_engine.core.config import EngineSettings, get_engine_settings
from workflow_engine.services.http_client import HTTPClient

from .action import CodeRunner, HttpRequestRunner, SetRunner, WaitRunner
from .ai import GeminiRunner, OpenAIRunner
from .base import NodeResult, NodeRunner, TriggerRunner, UnknownNodeRunner
from .flow import IfRunner, SplitInBatchesRunner, SwitchRunner
from .messaging import DiscordRunner, GmailSendRunner, SlackRunner, TelegramRunner

logger = logging.getLogger(__name__)

# Every NodeType needs an entry; see check_registry().
RUNNER_REGISTRY: Dict[NodeType, Type[NodeRunner]] = {
    NodeType.WEBHOOK: TriggerRunner,
    NodeType.CRON: TriggerRunner,
    NodeType.MANUAL: TriggerRunner,
    NodeType.MAIL_TRIGGER: TriggerRunner,
    NodeType.FORM_TRIGGER: TriggerRunner,
    NodeType.HTTP: HttpRequestRunner,
    NodeType.SET: SetRunner,
    NodeType.WAIT: WaitRunner,
    NodeType.CODE: CodeRunner,
    NodeType.IF: IfRunner,
    NodeType.SWITCH: SwitchRunner,
    NodeType.SPLIT_IN_BATCHES: SplitInBatchesRunner,
    NodeType.TELEGRAM: TelegramRunner,
    NodeType.SLACK: SlackRunner,
    NodeType.DISCORD: DiscordRunner,
    NodeType.GMAIL_SEND: GmailSendRunner,
    NodeType.OPENAI: OpenAIRunner,
    NodeType.GEMINI: GeminiRunner,
}


def check_registry() -> None:
    missing = [t.value for t in NodeType if t not in RUNNER_REGISTRY]
    if missing:
        raise RuntimeError(f"No runner registered for node types: {', '.join(missing)}")


check_registry()


def default_runner_for(
    node: NodeInstance,
    http: Optional[HTTPClient] = None,
    settings: Optional[EngineSettings] = None,
) -> NodeRunner:
    kind = node_kind(node.type)
    if kind is None:
        logger.warning(f"Unknown node type: {node.type}")
        return UnknownNodeRunner(http=http, settings=settings)
    return RUNNER_REGISTRY[kind](http=http, settings=settings)


class NodeDispatcher:
    """Executes one node with the runner for its type.

    Holds one HTTP client shared by every runner of the process.
    """

    def __init__(self, http: Optional[HTTPClient] = None, settings: Optional[EngineSettings] = None):
        self.settings = settings or get_engine_settings()
        self.http = http or HTTPClient(timeout=self.settings.http_timeout_seconds)

    async def execute(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        runner = default_runner_for(node, http=self.http, settings=self.settings)
        return await runner.run(node, context)

    async def aclose(self) -> None:
        await self.http.aclose()


__all__ = ["RUNNER_REGISTRY", "check_registry", "default_runner_for", "NodeDispatcher"]
