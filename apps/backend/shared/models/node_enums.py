"""
Node Type Enums - Single Source of Truth

Every node kind the runtime knows how to dispatch is listed here. Nodes whose
stored ``type`` is not in this enum still load; the dispatcher degrades them to
a generic acknowledgment instead of failing the run.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional


class NodeType(str, Enum):
    """Supported node kinds, grouped by family"""

    # Triggers
    WEBHOOK = "webhook"
    CRON = "cron"
    MANUAL = "manual"
    MAIL_TRIGGER = "mail_trigger"
    FORM_TRIGGER = "form_trigger"

    # Actions
    HTTP = "http"
    SET = "set"
    WAIT = "wait"
    CODE = "code"

    # Flow control
    IF = "if"
    SWITCH = "switch"
    SPLIT_IN_BATCHES = "splitInBatches"

    # Messaging
    TELEGRAM = "telegram"
    SLACK = "slack"
    DISCORD = "discord"
    GMAIL_SEND = "gmail_send"

    # AI
    OPENAI = "openai"
    GEMINI = "gemini"


TRIGGER_TYPES: FrozenSet[NodeType] = frozenset(
    {
        NodeType.WEBHOOK,
        NodeType.CRON,
        NodeType.MANUAL,
        NodeType.MAIL_TRIGGER,
        NodeType.FORM_TRIGGER,
    }
)

MAIN_HANDLE = "main"
TRUE_HANDLE = "true"
FALSE_HANDLE = "false"

# Initial-context key that identifies which trigger kind started a run
TRIGGER_MARKERS: Dict[str, NodeType] = {
    "headers": NodeType.WEBHOOK,
    "email": NodeType.MAIL_TRIGGER,
    "formData": NodeType.FORM_TRIGGER,
}


def node_kind(type_tag: str) -> Optional[NodeType]:
    """Resolve a stored type tag, returning None for unknown kinds."""
    try:
        return NodeType(type_tag)
    except ValueError:
        return None


def can_emit_handle(type_tag: str, handle: str) -> bool:
    """Whether a node of ``type_tag`` is able to emit on ``handle``."""
    kind = node_kind(type_tag)
    if kind is NodeType.IF:
        return handle in (TRUE_HANDLE, FALSE_HANDLE)
    if kind is NodeType.SWITCH:
        return handle.isdigit()
    return handle == MAIN_HANDLE


__all__ = [
    "NodeType",
    "TRIGGER_TYPES",
    "TRIGGER_MARKERS",
    "MAIN_HANDLE",
    "TRUE_HANDLE",
    "FALSE_HANDLE",
    "node_kind",
    "can_emit_handle",
]
