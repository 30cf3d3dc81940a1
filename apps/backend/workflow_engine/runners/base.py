"""Base runner types for workflow_engine."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from shared.models import NodeInstance
from workflow_engine.core.config import EngineSettings, get_engine_settings
from workflow_engine.core.exceptions import ConfigurationError
from workflow_engine.core.template import interpolate
from workflow_engine.services.http_client import HTTPClient


class ControlSignal(str, Enum):
    # The engine walks every outgoing connection with the merged context
    CONTINUE_DOWNSTREAM = "continue-downstream"
    # The runner chose the branches; the engine walks only those
    HANDLED_DOWNSTREAM = "handled-downstream"


@dataclass
class Branch:
    """One downstream walk requested by a branching or looping runner.

    ``handles`` limits the walk to connections leaving on those source
    handles; None means every outgoing connection.
    """

    context: Dict[str, Any]
    handles: Optional[FrozenSet[str]] = None


@dataclass
class NodeResult:
    fragment: Dict[str, Any]
    signal: ControlSignal = ControlSignal.CONTINUE_DOWNSTREAM
    branches: List[Branch] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)


class NodeRunner(ABC):
    def __init__(self, http: Optional[HTTPClient] = None, settings: Optional[EngineSettings] = None):
        self.settings = settings or get_engine_settings()
        self.http = http or HTTPClient(timeout=self.settings.http_timeout_seconds)

    @abstractmethod
    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        raise NotImplementedError

    @staticmethod
    def require(node: NodeInstance, *fields: str) -> None:
        """Raise ConfigurationError naming every missing/empty config field."""
        missing = [f for f in fields if node.config.get(f) in (None, "")]
        if missing:
            raise ConfigurationError(
                f"{node.type} node '{node.label}' is missing required config: {', '.join(missing)}"
            )

    @staticmethod
    def render(value: Any, context: Dict[str, Any], diagnostics: List[str]) -> Any:
        return interpolate(value, context, diagnostics)


class TriggerRunner(NodeRunner):
    """Triggers only mark the start of a run."""

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        return NodeResult(fragment={"triggered": True, "timestamp": int(time.time() * 1000)})


class UnknownNodeRunner(NodeRunner):
    """Fallback for node kinds without a runner; never fails the run."""

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        return NodeResult(
            fragment={"executed": True, "nodeType": node.type},
            diagnostics=[f"No runner for node type '{node.type}'; passed through"],
        )


__all__ = [
    "ControlSignal",
    "Branch",
    "NodeResult",
    "NodeRunner",
    "TriggerRunner",
    "UnknownNodeRunner",
]
