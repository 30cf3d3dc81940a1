from .base import Branch, ControlSignal, NodeResult, NodeRunner, TriggerRunner, UnknownNodeRunner
from .factory import RUNNER_REGISTRY, NodeDispatcher, default_runner_for

__all__ = [
    "default_runner_for",
    "NodeDispatcher",
    "RUNNER_REGISTRY",
    "NodeRunner",
    "NodeResult",
    "ControlSignal",
    "Branch",
    "TriggerRunner",
    "UnknownNodeRunner",
]
