"""Flow node runners: IF, SWITCH, SPLIT IN BATCHES."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List

from shared.models import FALSE_HANDLE, TRUE_HANDLE, NodeInstance
from workflow_engine.core.exceptions import ConfigurationError
from workflow_engine.core.expr import evaluate_condition, interpolate_condition

from .base import Branch, ControlSignal, NodeResult, NodeRunner

logger = logging.getLogger(__name__)


class IfRunner(NodeRunner):
    """Routes the unchanged parent context to the ``true`` or ``false`` handle."""

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        expr = node.config.get("conditions") or node.config.get("condition")
        if not expr:
            raise ConfigurationError(f"IF node '{node.label}' missing conditions")

        diagnostics: List[str] = []
        processed = interpolate_condition(str(expr), context, diagnostics)
        result = evaluate_condition(processed, context)
        logger.info(f"🔀 IF '{node.label}': {processed} -> {result}")

        handle = TRUE_HANDLE if result else FALSE_HANDLE
        return NodeResult(
            fragment={"condition": processed, "result": result},
            signal=ControlSignal.HANDLED_DOWNSTREAM,
            branches=[Branch(context=context, handles=frozenset({handle}))],
            diagnostics=diagnostics,
        )


def _parse_rules(node: NodeInstance) -> List[str]:
    rules = node.config.get("rules")
    if isinstance(rules, str):
        stripped = rules.strip()
        if stripped.startswith("["):
            try:
                rules = json.loads(stripped)
            except ValueError as e:
                raise ConfigurationError(f"switch node '{node.label}': rules are not valid JSON") from e
        else:
            rules = [line for line in stripped.splitlines() if line.strip()]
    if not isinstance(rules, list) or not rules:
        raise ConfigurationError(f"switch node '{node.label}' missing rules")
    parsed = []
    for rule in rules:
        # Editor rows may be {"condition": "..."} objects
        if isinstance(rule, dict):
            rule = rule.get("condition") or rule.get("expression")
        if not isinstance(rule, str) or not rule.strip():
            raise ConfigurationError(f"switch node '{node.label}' has an empty rule")
        parsed.append(rule.strip())
    return parsed


class SwitchRunner(NodeRunner):
    """First matching rule ``i`` routes to handle ``"i"``; no match routes nowhere."""

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        diagnostics: List[str] = []
        matched = None
        for index, rule in enumerate(_parse_rules(node)):
            if evaluate_condition(interpolate_condition(rule, context, diagnostics), context):
                matched = index
                break

        branches = []
        if matched is not None:
            branches.append(Branch(context=context, handles=frozenset({str(matched)})))
        else:
            diagnostics.append("No switch rule matched")
        return NodeResult(
            fragment={"matched": matched},
            signal=ControlSignal.HANDLED_DOWNSTREAM,
            branches=branches,
            diagnostics=diagnostics,
        )


class SplitInBatchesRunner(NodeRunner):
    """Walks the downstream subgraph once per batch of ``items``.

    Without an ``items`` list in context the whole context is the single item.
    Each walk sees ``items`` replaced by its batch plus
    ``loop = {index (1-based), total, batchSize}``.
    """

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        raw_size = node.config.get("batchSize", self.settings.default_batch_size)
        try:
            batch_size = int(raw_size)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"splitInBatches node '{node.label}': batchSize must be an integer") from e
        if batch_size < 1:
            raise ConfigurationError(f"splitInBatches node '{node.label}': batchSize must be at least 1")

        if "items" not in context:
            items = [dict(context)]
        elif isinstance(context["items"], list):
            items = context["items"]
        else:
            items = [context["items"]]

        total = math.ceil(len(items) / batch_size)
        branches = []
        for index in range(total):
            batch = items[index * batch_size : (index + 1) * batch_size]
            branches.append(
                Branch(
                    context={
                        **context,
                        "items": batch,
                        "loop": {"index": index + 1, "total": total, "batchSize": batch_size},
                    }
                )
            )

        return NodeResult(
            fragment={"batches": total, "batchSize": batch_size, "itemCount": len(items)},
            signal=ControlSignal.HANDLED_DOWNSTREAM,
            branches=branches,
        )


__all__ = ["IfRunner", "SwitchRunner", "SplitInBatchesRunner"]
