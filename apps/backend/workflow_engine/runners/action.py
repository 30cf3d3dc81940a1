"""Action node runners: HTTP, SET, WAIT, CODE."""

from __future__ import annotations

import asyncio
import copy
import json as _json
import logging
import operator
import sys
import time
import types
from typing import Any, Dict, List, Optional

from RestrictedPython import compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)

from shared.models import NodeInstance
from workflow_engine.core.exceptions import ConfigurationError, EvaluationError, ExternalCallError
from workflow_engine.core.template import interpolate_structure

from .base import NodeResult, NodeRunner

logger = logging.getLogger(__name__)

WAIT_UNITS = {"seconds": 1, "minutes": 60, "hours": 3600}

HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}


def _parse_json_config(node: NodeInstance, field: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return _json.loads(value)
    except ValueError as e:
        raise ConfigurationError(f"{node.type} node '{node.label}': '{field}' is not valid JSON: {e}") from e


class HttpRequestRunner(NodeRunner):
    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        self.require(node, "url")
        cfg = node.config
        diagnostics: List[str] = []

        method = str(cfg.get("method") or "GET").upper()
        if method not in HTTP_METHODS:
            raise ConfigurationError(f"http node '{node.label}': unsupported method {method}")

        url = self.render(str(cfg["url"]), context, diagnostics)
        headers = interpolate_structure(
            _parse_json_config(node, "headers", cfg.get("headers") or {}), context, diagnostics
        )
        if not isinstance(headers, dict):
            raise ConfigurationError(f"http node '{node.label}': headers must be an object")
        headers = {"Content-Type": "application/json", **{k: str(v) for k, v in headers.items()}}

        json_body: Optional[Any] = None
        content: Optional[str] = None
        body = cfg.get("body")
        if body not in (None, "") and method not in ("GET", "HEAD"):
            rendered = interpolate_structure(body, context, diagnostics)
            if isinstance(rendered, str):
                try:
                    json_body = _json.loads(rendered)
                except ValueError:
                    content = rendered
            else:
                json_body = rendered

        logger.info(f"🌐 HTTP {method} {url}")
        resp = await self.http.request(
            method,
            url,
            headers=headers,
            json_body=json_body,
            content=content,
            retry_attempts=int(cfg.get("retryAttempts", 0) or 0),
        )
        if not resp.ok:
            raise ExternalCallError(
                f"HTTP {method} {url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        return NodeResult(
            fragment={"status": resp.status_code, "statusCode": resp.status_code, "data": resp.data},
            diagnostics=diagnostics,
        )


class SetRunner(NodeRunner):
    """Adds fixed (interpolated) values to the context."""

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        self.require(node, "values")
        values = _parse_json_config(node, "values", node.config["values"])
        if not isinstance(values, dict):
            raise ConfigurationError(f"set node '{node.label}': values must be an object")
        diagnostics: List[str] = []
        return NodeResult(fragment=interpolate_structure(values, context, diagnostics), diagnostics=diagnostics)


class WaitRunner(NodeRunner):
    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        self.require(node, "amount")
        unit = str(node.config.get("unit") or "seconds")
        if unit not in WAIT_UNITS:
            raise ConfigurationError(f"wait node '{node.label}': unknown unit '{unit}'")
        try:
            amount = float(node.config["amount"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"wait node '{node.label}': amount must be a number") from e
        seconds = amount * WAIT_UNITS[unit]
        if seconds < 0 or seconds > self.settings.max_wait_seconds:
            raise ConfigurationError(
                f"wait node '{node.label}': {seconds:g}s is outside 0..{self.settings.max_wait_seconds:g}s"
            )
        await asyncio.sleep(seconds)
        return NodeResult(fragment={"waited": seconds})


# Frame, code and generator internals lead back to the host's builtins
_BLOCKED_ATTRIBUTES = frozenset(
    {
        "gi_frame",
        "gi_code",
        "gi_yieldfrom",
        "cr_frame",
        "cr_code",
        "cr_await",
        "ag_frame",
        "ag_code",
        "ag_await",
        "tb_frame",
        "tb_next",
        "f_back",
        "f_builtins",
        "f_globals",
        "f_locals",
        "f_code",
        "f_trace",
        "co_code",
        "mro",
    }
)

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "|=": operator.ior,
    "&=": operator.iand,
    "^=": operator.ixor,
}


def _guarded_getattr(obj: Any, name: str, default: Any = None) -> Any:
    if name in _BLOCKED_ATTRIBUTES:
        raise AttributeError(f"Attribute '{name}' is not allowed in code nodes")
    value = safer_getattr(obj, name, default)
    if isinstance(value, types.ModuleType):
        raise AttributeError(f"Attribute '{name}' is not allowed in code nodes")
    return value


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    func = _INPLACE_OPS.get(op)
    if func is None:
        raise EvaluationError(f"Operator '{op}' is not allowed in code nodes")
    return func(target, value)


class _PrintCollector:
    """Stands in for ``print``; every call adds one line to ``lines``."""

    def __init__(self, lines: List[str]):
        self.lines = lines

    def _call_print(self, *objects: Any, **kwargs: Any) -> None:
        self.lines.append(str(kwargs.get("sep", " ")).join(str(o) for o in objects))

    def __call__(self) -> str:
        # backs the ``printed`` name
        return "\n".join(self.lines)


class _CodeTimeout(BaseException):
    """Raised inside the snippet's thread once its deadline passes.

    Not an ``Exception`` so a snippet's own ``except Exception`` cannot keep
    a runaway loop alive.
    """


_SANDBOX_BUILTINS = {
    **safe_builtins,
    "dict": dict,
    "list": list,
    "set": set,
    "enumerate": enumerate,
    "max": max,
    "min": min,
    "sum": sum,
    "any": any,
    "all": all,
    "map": map,
    "filter": filter,
    "reversed": reversed,
}

_SANDBOX_JSON = types.SimpleNamespace(loads=_json.loads, dumps=_json.dumps)


def _run_with_deadline(byte_code: Any, namespace: Dict[str, Any], timeout: float) -> None:
    """exec ``byte_code`` in the calling (worker) thread, interrupting it after ``timeout`` seconds."""
    deadline = time.monotonic() + timeout

    def trace(frame, event, arg):
        if time.monotonic() > deadline:
            raise _CodeTimeout()
        return trace

    previous = sys.gettrace()
    sys.settrace(trace)
    try:
        exec(byte_code, namespace)
    finally:
        sys.settrace(previous)


class CodeRunner(NodeRunner):
    """Runs a short Python snippet against ``items`` and ``context``.

    Snippets are compiled with RestrictedPython and see only copies of their
    inputs, a ``json`` helper (``loads``/``dumps``) and RestrictedPython's safe
    builtins. They run in a worker thread, bounded by
    ``settings.code_timeout_seconds``, so a slow snippet never blocks the event
    loop. A snippet reports back by assigning ``result`` (a dict is merged into
    the context, a list becomes ``items``, anything else lands under
    ``result``) or by mutating ``items``. ``print`` output is captured into the
    log entry's diagnostics, including when the snippet fails.
    """

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        self.require(node, "code")
        source = str(node.config["code"])
        if len(source) > self.settings.max_code_length:
            raise ConfigurationError(f"code node '{node.label}': source exceeds {self.settings.max_code_length} chars")

        try:
            byte_code = compile_restricted(source, f"<code:{node.id}>", "exec")
        except SyntaxError as e:
            raise EvaluationError(f"code node '{node.label}': {e}") from e

        output: List[str] = []
        collector = _PrintCollector(output)
        items = context.get("items")
        namespace: Dict[str, Any] = {
            "__builtins__": _SANDBOX_BUILTINS,
            "_getattr_": _guarded_getattr,
            "_getitem_": default_guarded_getitem,
            "_getiter_": default_guarded_getiter,
            "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
            "_unpack_sequence_": guarded_unpack_sequence,
            "_write_": full_write_guard,
            "_inplacevar_": _inplacevar,
            "_print_": lambda _getattr_=None: collector,
            "json": _SANDBOX_JSON,
            "items": copy.deepcopy(items if isinstance(items, list) else [context]),
            "context": copy.deepcopy(context),
            "result": None,
        }

        timeout = self.settings.code_timeout_seconds
        try:
            await asyncio.wait_for(
                asyncio.to_thread(_run_with_deadline, byte_code, namespace, timeout),
                timeout=timeout,
            )
        except (_CodeTimeout, asyncio.TimeoutError) as e:
            logger.warning(f"⏱️ code node '{node.label}' stopped after {timeout:g}s")
            raise EvaluationError(
                f"code node '{node.label}' timed out after {timeout:g}s", diagnostics=output
            ) from e
        except Exception as e:
            raise EvaluationError(
                f"code node '{node.label}' raised {type(e).__name__}: {e}", diagnostics=output
            ) from e

        result = namespace.get("result")
        if result is None:
            fragment: Dict[str, Any] = {"items": namespace.get("items")}
        elif isinstance(result, dict):
            fragment = result
        elif isinstance(result, list):
            fragment = {"items": result}
        else:
            fragment = {"result": result}

        return NodeResult(fragment=fragment, diagnostics=output)


__all__ = ["HttpRequestRunner", "SetRunner", "WaitRunner", "CodeRunner"]
