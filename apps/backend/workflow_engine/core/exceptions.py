"""Engine-specific exceptions for workflow_engine (core)."""

from __future__ import annotations

from typing import List, Optional


class EngineError(Exception):
    """Base engine error; ``diagnostics`` carries output gathered before the failure."""

    def __init__(self, message: str = "", diagnostics: Optional[List[str]] = None):
        super().__init__(message)
        self.diagnostics: List[str] = list(diagnostics or [])


class ConfigurationError(EngineError):
    """A node's configuration is missing a field or holds an invalid value."""

    pass


class ExternalCallError(EngineError):
    """Network or provider failure while a node performed its side effect."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        diagnostics: Optional[List[str]] = None,
    ):
        super().__init__(message, diagnostics)
        self.status_code = status_code


class EvaluationError(EngineError):
    pass


class NoStartNodeError(EngineError):
    pass


class CodecError(EngineError):
    pass


class GraphError(EngineError):
    pass


class CycleError(GraphError):
    pass


__all__ = [
    "EngineError",
    "ConfigurationError",
    "ExternalCallError",
    "EvaluationError",
    "NoStartNodeError",
    "CodecError",
    "GraphError",
    "CycleError",
]
