"""Messaging node runners: Telegram, Slack, Discord, Gmail (SMTP).

Every runner follows the same steps: check required config, interpolate the
templated fields against the context, make one provider call, and return a
small acknowledgment fragment.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Tuple

from shared.models import NodeInstance
from workflow_engine.core.exceptions import ConfigurationError, ExternalCallError

from .base import NodeResult, NodeRunner

logger = logging.getLogger(__name__)


class MessagingRunner(NodeRunner):
    required_fields: Tuple[str, ...] = ()
    templated_fields: Tuple[str, ...] = ()

    async def run(self, node: NodeInstance, context: Dict[str, Any]) -> NodeResult:
        self.require(node, *self.required_fields)
        diagnostics: List[str] = []
        values = dict(node.config)
        for field in self.templated_fields:
            if field in values:
                values[field] = self.render(values[field], context, diagnostics)
        ack = await self.send(node, values)
        return NodeResult(fragment=ack, diagnostics=diagnostics)

    @abstractmethod
    async def send(self, node: NodeInstance, values: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class TelegramRunner(MessagingRunner):
    required_fields = ("botToken", "chatId", "text")
    templated_fields = ("chatId", "text")

    async def send(self, node: NodeInstance, values: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"📨 Telegram: sending to chat {values['chatId']}")
        resp = await self.http.request(
            "POST",
            f"{self.settings.telegram_api_base}/bot{values['botToken']}/sendMessage",
            json_body={
                "chat_id": values["chatId"],
                "text": values["text"],
                "parse_mode": values.get("parseMode") or "Markdown",
            },
        )
        body = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok or body.get("ok") is False:
            raise ExternalCallError(
                f"Telegram API error: {body.get('description') or 'Unknown error'}",
                status_code=resp.status_code,
            )
        return {"sent": True, "messageId": (body.get("result") or {}).get("message_id")}


class SlackRunner(MessagingRunner):
    required_fields = ("channel", "text")
    templated_fields = ("channel", "text")

    async def send(self, node: NodeInstance, values: Dict[str, Any]) -> Dict[str, Any]:
        token = values.get("token") or values.get("botToken")
        if not token:
            raise ConfigurationError(f"slack node '{node.label}' is missing required config: token")
        resp = await self.http.request(
            "POST",
            f"{self.settings.slack_api_base}/chat.postMessage",
            json_body={"channel": values["channel"], "text": values["text"]},
            auth={"type": "bearer", "token": token},
        )
        body = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok or not body.get("ok"):
            raise ExternalCallError(
                f"Slack API error: {body.get('error') or resp.status_code}", status_code=resp.status_code
            )
        return {"sent": True, "channel": body.get("channel"), "ts": body.get("ts")}


class DiscordRunner(MessagingRunner):
    required_fields = ("webhookUrl", "content")
    templated_fields = ("content",)

    async def send(self, node: NodeInstance, values: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"content": values["content"]}
        if values.get("username"):
            payload["username"] = values["username"]
        resp = await self.http.request("POST", str(values["webhookUrl"]), json_body=payload)
        if not resp.ok:
            raise ExternalCallError(
                f"Discord webhook returned {resp.status_code}: {resp.text[:200]}", status_code=resp.status_code
            )
        return {"sent": True}


class GmailSendRunner(MessagingRunner):
    """Sends mail over SMTP; node ``user``/``password`` override the service account."""

    required_fields = ("sendTo", "subject", "message")
    templated_fields = ("sendTo", "subject", "message")

    async def send(self, node: NodeInstance, values: Dict[str, Any]) -> Dict[str, Any]:
        smtp = self.settings.get_smtp_config()
        username = values.get("user") or smtp["username"]
        password = values.get("password") or smtp["password"]
        if not username or not password:
            raise ConfigurationError(f"gmail_send node '{node.label}' has no SMTP credentials")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = str(values["subject"])
        msg["From"] = values.get("user") or smtp["sender_email"]
        msg["To"] = str(values["sendTo"])
        msg.attach(MIMEText(str(values["message"]), "plain", "utf-8"))

        try:
            await asyncio.to_thread(self._deliver, smtp, username, password, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise ExternalCallError(f"SMTP delivery failed: {e}") from e
        logger.info(f"📧 Email sent to {msg['To']}")
        return {"sent": True, "to": msg["To"]}

    @staticmethod
    def _deliver(smtp: Dict[str, Any], username: str, password: str, msg: MIMEMultipart) -> None:
        if smtp["use_ssl"]:
            server = smtplib.SMTP_SSL(smtp["host"], smtp["port"], timeout=smtp["timeout"])
        else:
            server = smtplib.SMTP(smtp["host"], smtp["port"], timeout=smtp["timeout"])
            server.starttls()
        try:
            server.login(username, password)
            server.send_message(msg)
        finally:
            server.quit()


__all__ = ["MessagingRunner", "TelegramRunner", "SlackRunner", "DiscordRunner", "GmailSendRunner"]
