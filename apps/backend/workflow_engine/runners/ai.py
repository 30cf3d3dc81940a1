"""AI node runners: OpenAI chat completions and Gemini generateContent."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from shared.models import NodeInstance
from workflow_engine.core.exceptions import ExternalCallError

from .base import NodeResult, NodeRunner

logger = logging.getLogger(__name__)


class OpenAIRunner(NodeRunner):
    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        self.require(node, "apiKey", "prompt")
        diagnostics: List[str] = []
        prompt = self.render(str(node.config["prompt"]), context, diagnostics)
        model = node.config.get("model") or self.settings.openai_default_model

        logger.info(f"🤖 OpenAI {model}: {node.label}")
        resp = await self.http.request(
            "POST",
            f"{self.settings.openai_api_base}/chat/completions",
            json_body={"model": model, "messages": [{"role": "user", "content": prompt}]},
            auth={"type": "bearer", "token": node.config["apiKey"]},
        )
        body = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok:
            message = (body.get("error") or {}).get("message") or resp.text[:200]
            raise ExternalCallError(f"OpenAI API error: {message}", status_code=resp.status_code)

        try:
            text = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalCallError("OpenAI API returned no completion") from e

        return NodeResult(
            fragment={"response": text, "model": model, "prompt": prompt},
            diagnostics=diagnostics,
        )


class GeminiRunner(NodeRunner):
    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        self.require(node, "apiKey", "prompt")
        diagnostics: List[str] = []
        prompt = self.render(str(node.config["prompt"]), context, diagnostics)
        model = node.config.get("model") or self.settings.gemini_default_model

        logger.info(f"🤖 Gemini {model}: {node.label}")
        resp = await self.http.request(
            "POST",
            f"{self.settings.gemini_api_base}/models/{model}:generateContent",
            headers={"x-goog-api-key": str(node.config["apiKey"])},
            json_body={"contents": [{"parts": [{"text": prompt}]}]},
        )
        body = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok:
            message = (body.get("error") or {}).get("message") or resp.text[:200]
            raise ExternalCallError(f"Gemini API error: {message}", status_code=resp.status_code)

        try:
            parts = body["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalCallError("Gemini API returned no candidates") from e

        return NodeResult(
            fragment={"response": text, "model": model, "prompt": prompt},
            diagnostics=diagnostics,
        )


__all__ = ["OpenAIRunner", "GeminiRunner"]
