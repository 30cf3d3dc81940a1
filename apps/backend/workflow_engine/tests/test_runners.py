import json
import smtplib
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from shared.models import NodeType
from workflow_engine.core.config import EngineSettings
from workflow_engine.core.exceptions import ConfigurationError, EvaluationError, ExternalCallError
from workflow_engine.runners.base import ControlSignal, TriggerRunner, UnknownNodeRunner
from workflow_engine.runners.factory import RUNNER_REGISTRY, NodeDispatcher, default_runner_for
from workflow_engine.tests.builders import make_node

TEST_KEY = "0123456789abcdef0123456789abcdef"


def test_every_node_type_has_a_runner():
    assert set(RUNNER_REGISTRY) == set(NodeType)


def test_unknown_type_gets_fallback_runner(settings, mock_http):
    runner = default_runner_for(make_node("x", "postgres"), http=mock_http, settings=settings)
    assert isinstance(runner, UnknownNodeRunner)
    assert isinstance(default_runner_for(make_node("c", "cron"), http=mock_http, settings=settings), TriggerRunner)


async def test_unknown_type_degrades_gracefully(dispatcher):
    result = await dispatcher.execute(make_node("x", "futureNode"), {})
    assert result.fragment == {"executed": True, "nodeType": "futureNode"}
    assert result.signal is ControlSignal.CONTINUE_DOWNSTREAM


@pytest.mark.parametrize("node_type", ["webhook", "cron", "manual", "mail_trigger", "form_trigger"])
async def test_triggers_pass_through(dispatcher, node_type):
    result = await dispatcher.execute(make_node("t", node_type), {"a": 1})
    assert result.fragment["triggered"] is True
    assert isinstance(result.fragment["timestamp"], int)


class TestHttpRunner:
    async def test_interpolates_and_returns_status(self, dispatcher, mock_http):
        mock_http.routes["https://api.example.com"] = lambda req: httpx.Response(201, json={"id": 7})
        node = make_node(
            "h",
            "http",
            url="https://api.example.com/users/{{userId}}",
            method="POST",
            headers={"X-Trace": "{{trace}}"},
            body='{"name": "{{name}}"}',
        )
        result = await dispatcher.execute(node, {"userId": 3, "trace": "t-1", "name": "Ada"})

        assert result.fragment == {"status": 201, "statusCode": 201, "data": {"id": 7}}
        request = mock_http.calls[-1]
        assert str(request.url) == "https://api.example.com/users/3"
        assert request.headers["X-Trace"] == "t-1"
        assert json.loads(request.content) == {"name": "Ada"}

    async def test_non_2xx_is_external_call_error(self, dispatcher, mock_http):
        mock_http.routes["https://api.example.com"] = lambda req: httpx.Response(503, text="down")
        with pytest.raises(ExternalCallError) as exc_info:
            await dispatcher.execute(make_node("h", "http", url="https://api.example.com"), {})
        assert exc_info.value.status_code == 503

    async def test_transport_error_is_external_call_error(self, dispatcher, mock_http):
        def boom(request):
            raise httpx.ConnectError("refused", request=request)

        mock_http.routes["https://down.example.com"] = boom
        with pytest.raises(ExternalCallError, match="refused"):
            await dispatcher.execute(make_node("h", "http", url="https://down.example.com"), {})

    async def test_missing_url(self, dispatcher):
        with pytest.raises(ConfigurationError, match="url"):
            await dispatcher.execute(make_node("h", "http"), {})


class TestIfRunner:
    async def test_true_branch_keeps_parent_context(self, dispatcher):
        ctx = {"statusCode": 200}
        result = await dispatcher.execute(make_node("i", "if", conditions="{{statusCode}} == 200"), ctx)
        assert result.signal is ControlSignal.HANDLED_DOWNSTREAM
        assert result.fragment == {"condition": "200 == 200", "result": True}
        assert len(result.branches) == 1
        assert result.branches[0].handles == frozenset({"true"})
        assert result.branches[0].context is ctx

    async def test_false_branch(self, dispatcher):
        result = await dispatcher.execute(make_node("i", "if", conditions='{{status}} == "ok"'), {"status": "bad"})
        assert result.branches[0].handles == frozenset({"false"})

    async def test_missing_condition(self, dispatcher):
        with pytest.raises(ConfigurationError, match="conditions"):
            await dispatcher.execute(make_node("i", "if"), {})

    async def test_bad_condition(self, dispatcher):
        with pytest.raises(EvaluationError):
            await dispatcher.execute(make_node("i", "if", conditions="open('x')"), {})


class TestSwitchRunner:
    async def test_first_match_wins(self, dispatcher):
        node = make_node("s", "switch", rules=["{{n}} > 10", "{{n}} > 1", "{{n}} > 0"])
        result = await dispatcher.execute(node, {"n": 5})
        assert result.fragment == {"matched": 1}
        assert result.branches[0].handles == frozenset({"1"})

    async def test_newline_rules_and_no_match(self, dispatcher):
        node = make_node("s", "switch", rules="{{n}} == 1\n{{n}} == 2")
        result = await dispatcher.execute(node, {"n": 3})
        assert result.fragment == {"matched": None}
        assert result.branches == []


class TestSplitInBatches:
    async def test_partitions_items(self, dispatcher):
        ctx = {"items": list(range(7)), "keep": "me"}
        result = await dispatcher.execute(make_node("b", "splitInBatches", batchSize=3), ctx)
        assert result.signal is ControlSignal.HANDLED_DOWNSTREAM
        assert [b.context["items"] for b in result.branches] == [[0, 1, 2], [3, 4, 5], [6]]
        assert [b.context["loop"]["index"] for b in result.branches] == [1, 2, 3]
        assert all(b.context["loop"]["total"] == 3 for b in result.branches)
        assert all(b.context["keep"] == "me" for b in result.branches)
        assert ctx["items"] == list(range(7))

    async def test_context_without_items_is_one_item(self, dispatcher):
        result = await dispatcher.execute(make_node("b", "splitInBatches", batchSize=5), {"a": 1})
        assert len(result.branches) == 1
        assert result.branches[0].context["items"] == [{"a": 1}]

    async def test_empty_items_walk_nothing(self, dispatcher):
        result = await dispatcher.execute(make_node("b", "splitInBatches", batchSize=5), {"items": []})
        assert result.branches == []
        assert result.fragment["batches"] == 0

    async def test_invalid_batch_size(self, dispatcher):
        with pytest.raises(ConfigurationError):
            await dispatcher.execute(make_node("b", "splitInBatches", batchSize=0), {"items": [1]})


class TestDataRunners:
    async def test_set_parses_json_and_interpolates(self, dispatcher):
        node = make_node("s", "set", values='{"greeting": "hi {{name}}", "n": 2}')
        result = await dispatcher.execute(node, {"name": "Ada"})
        assert result.fragment == {"greeting": "hi Ada", "n": 2}

    async def test_set_invalid_json(self, dispatcher):
        with pytest.raises(ConfigurationError, match="JSON"):
            await dispatcher.execute(make_node("s", "set", values="{nope"), {})

    async def test_wait_sleeps(self, dispatcher):
        with patch("workflow_engine.runners.action.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await dispatcher.execute(make_node("w", "wait", amount=2, unit="seconds"), {})
        sleep.assert_awaited_once_with(2.0)
        assert result.fragment == {"waited": 2.0}

    async def test_wait_over_limit(self, dispatcher):
        with pytest.raises(ConfigurationError):
            await dispatcher.execute(make_node("w", "wait", amount=1, unit="hours"), {})


class TestCodeRunner:
    async def test_result_dict_and_print_capture(self, dispatcher):
        code = "total = sum(i['v'] for i in items)\nprint('total', total)\nresult = {'total': total}"
        result = await dispatcher.execute(make_node("c", "code", code=code), {"items": [{"v": 1}, {"v": 2}]})
        assert result.fragment == {"total": 3}
        assert result.diagnostics == ["total 3"]

    async def test_mutated_items_returned(self, dispatcher):
        ctx = {"items": [{"v": 1}]}
        result = await dispatcher.execute(make_node("c", "code", code="items.append({'v': 2})"), ctx)
        assert result.fragment == {"items": [{"v": 1}, {"v": 2}]}
        assert ctx["items"] == [{"v": 1}]

    async def test_loops_unpacking_and_json_helper(self, dispatcher):
        code = (
            "total = 0\n"
            "for key, value in context['scores'].items():\n"
            "    total += value\n"
            "result = {'total': total, 'keys': json.dumps(sorted(context['scores']))}"
        )
        result = await dispatcher.execute(make_node("c", "code", code=code), {"scores": {"b": 2, "a": 3}})
        assert result.fragment == {"total": 5, "keys": '["a", "b"]'}

    @pytest.mark.parametrize(
        "code",
        [
            "import os",
            "from os import path",
            "result = open('/etc/passwd').read()",
            "result = ().__class__.__bases__",
            "result = __builtins__",
            "def f():\n    yield g.gi_frame.f_back\ng = f()\nfor frame in g:\n    break\n"
            "b = frame.f_back.f_builtins\nresult = {'pid': b['__import__']('os').getpid()}",
        ],
    )
    async def test_host_access_blocked(self, dispatcher, code):
        with pytest.raises(EvaluationError):
            await dispatcher.execute(make_node("c", "code", code=code), {})

    async def test_exception_becomes_evaluation_error(self, dispatcher):
        with pytest.raises(EvaluationError, match="ZeroDivisionError"):
            await dispatcher.execute(make_node("c", "code", code="result = 1 / 0"), {})

    async def test_printed_output_kept_on_failure(self, dispatcher):
        code = "print('checking', len(items))\nresult = items[0]['missing']"
        with pytest.raises(EvaluationError, match="KeyError") as exc_info:
            await dispatcher.execute(make_node("c", "code", code=code), {"items": [{"v": 1}]})
        assert exc_info.value.diagnostics == ["checking 1"]

    async def test_runaway_loop_times_out(self, mock_http):
        settings = EngineSettings(credential_encryption_key=TEST_KEY, code_timeout_seconds=0.2)
        dispatcher = NodeDispatcher(http=mock_http, settings=settings)
        code = "print('start')\nwhile True:\n    try:\n        pass\n    except Exception:\n        pass"

        with pytest.raises(EvaluationError, match="timed out") as exc_info:
            await dispatcher.execute(make_node("c", "code", code=code), {})
        assert exc_info.value.diagnostics == ["start"]


class TestMessagingRunners:
    async def test_telegram(self, dispatcher, mock_http):
        mock_http.routes["https://api.telegram.org"] = lambda req: httpx.Response(
            200, json={"ok": True, "result": {"message_id": 99}}
        )
        node = make_node("t", "telegram", botToken="123:abc", chatId="{{chat}}", text="Hello {{name}}")
        result = await dispatcher.execute(node, {"chat": "42", "name": "Ada"})

        assert result.fragment == {"sent": True, "messageId": 99}
        request = mock_http.calls[-1]
        assert str(request.url) == "https://api.telegram.org/bot123:abc/sendMessage"
        assert json.loads(request.content) == {"chat_id": "42", "text": "Hello Ada", "parse_mode": "Markdown"}

    async def test_telegram_api_error(self, dispatcher, mock_http):
        mock_http.routes["https://api.telegram.org"] = lambda req: httpx.Response(
            400, json={"ok": False, "description": "chat not found"}
        )
        node = make_node("t", "telegram", botToken="1:a", chatId="1", text="x")
        with pytest.raises(ExternalCallError, match="chat not found"):
            await dispatcher.execute(node, {})

    async def test_missing_fields_listed(self, dispatcher):
        with pytest.raises(ConfigurationError, match="botToken, chatId"):
            await dispatcher.execute(make_node("t", "telegram", text="x"), {})

    async def test_slack(self, dispatcher, mock_http):
        mock_http.routes["https://slack.com/api"] = lambda req: httpx.Response(
            200, json={"ok": True, "channel": "C1", "ts": "1.2"}
        )
        node = make_node("s", "slack", botToken="xoxb", channel="#ops", text="{{msg}}")
        result = await dispatcher.execute(node, {"msg": "deployed"})
        assert result.fragment == {"sent": True, "channel": "C1", "ts": "1.2"}
        assert mock_http.calls[-1].headers["Authorization"] == "Bearer xoxb"

    async def test_slack_api_error(self, dispatcher, mock_http):
        mock_http.routes["https://slack.com/api"] = lambda req: httpx.Response(
            200, json={"ok": False, "error": "invalid_auth"}
        )
        node = make_node("s", "slack", token="bad", channel="#ops", text="x")
        with pytest.raises(ExternalCallError, match="invalid_auth"):
            await dispatcher.execute(node, {})

    async def test_discord(self, dispatcher, mock_http):
        mock_http.routes["https://discord.com"] = lambda req: httpx.Response(204)
        node = make_node("d", "discord", webhookUrl="https://discord.com/api/webhooks/1/x", content="hi {{who}}")
        result = await dispatcher.execute(node, {"who": "all"})
        assert result.fragment == {"sent": True}
        assert json.loads(mock_http.calls[-1].content) == {"content": "hi all"}

    async def test_gmail_send(self, dispatcher):
        server = MagicMock()
        node = make_node(
            "g", "gmail_send", sendTo="{{to}}", subject="Report", message="Body", user="me@x.com", password="pw"
        )
        with patch("workflow_engine.runners.messaging.smtplib.SMTP_SSL", return_value=server):
            result = await dispatcher.execute(node, {"to": "you@x.com"})

        assert result.fragment == {"sent": True, "to": "you@x.com"}
        server.login.assert_called_once_with("me@x.com", "pw")
        server.send_message.assert_called_once()
        server.quit.assert_called_once()

    async def test_gmail_smtp_failure(self, dispatcher):
        node = make_node("g", "gmail_send", sendTo="a@b.c", subject="s", message="m", user="u", password="p")
        with patch(
            "workflow_engine.runners.messaging.smtplib.SMTP_SSL",
            side_effect=smtplib.SMTPConnectError(421, b"busy"),
        ):
            with pytest.raises(ExternalCallError, match="SMTP"):
                await dispatcher.execute(node, {})


class TestAIRunners:
    async def test_openai(self, dispatcher, mock_http):
        mock_http.routes["https://api.openai.com"] = lambda req: httpx.Response(
            200, json={"choices": [{"message": {"content": "42"}}]}
        )
        node = make_node("o", "openai", apiKey="sk-test", prompt="Answer {{q}}")
        result = await dispatcher.execute(node, {"q": "everything"})
        assert result.fragment == {"response": "42", "model": "gpt-4o", "prompt": "Answer everything"}
        assert mock_http.calls[-1].headers["Authorization"] == "Bearer sk-test"

    async def test_gemini(self, dispatcher, mock_http):
        mock_http.routes["https://generativelanguage.googleapis.com"] = lambda req: httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "hi"}, {"text": "!"}]}}]}
        )
        node = make_node("g", "gemini", apiKey="g-key", prompt="Say hi", model="gemini-pro")
        result = await dispatcher.execute(node, {})
        assert result.fragment["response"] == "hi!"
        assert "models/gemini-pro:generateContent" in str(mock_http.calls[-1].url)

    async def test_missing_prompt(self, dispatcher):
        with pytest.raises(ConfigurationError, match="prompt"):
            await dispatcher.execute(make_node("o", "openai", apiKey="k"), {})
