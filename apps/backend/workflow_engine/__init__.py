"""
workflow_engine

Runtime that turns a persisted workflow graph into side effects: variable
interpolation, credential decryption, node dispatch and the depth-first
execution engine.
"""

from .core.engine import ExecutionEngine

__all__ = ["ExecutionEngine"]
