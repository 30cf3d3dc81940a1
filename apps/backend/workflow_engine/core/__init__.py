from .engine import ExecutionEngine
from .exceptions import (
    CodecError,
    ConfigurationError,
    CycleError,
    EngineError,
    EvaluationError,
    ExternalCallError,
    GraphError,
    NoStartNodeError,
)
from .graph import ExecutionGraph
from .template import interpolate, interpolate_structure

__all__ = [
    "ExecutionEngine",
    "ExecutionGraph",
    "interpolate",
    "interpolate_structure",
    "EngineError",
    "ConfigurationError",
    "ExternalCallError",
    "EvaluationError",
    "NoStartNodeError",
    "CodecError",
    "GraphError",
    "CycleError",
]
