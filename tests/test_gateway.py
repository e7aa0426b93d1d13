import json

import httpx
import pytest

from datachat.core.chat.errors import ModelGatewayError
from datachat.core.chat.gateway import OllamaGateway, build_messages


def test_messages_are_ordered():
    messages = build_messages(
        "And last month?",
        [("user", "Total sales?"), ("assistant", "Here you go.")],
        "You are a data analyst.",
    )
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == "And last month?"


def test_no_system_message_without_instructions():
    assert build_messages("hi", [], None) == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_generate_returns_reply_and_token_count():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "message": {"role": "assistant", "content": "```sql\nSELECT 1\n```"},
                "prompt_eval_count": 120,
                "eval_count": 30,
            },
        )

    gateway = OllamaGateway(
        base_url="http://ollama:11434/", model="llama3", transport=httpx.MockTransport(handler)
    )
    text, tokens = await gateway.generate("count rows", [], "instructions")

    assert text == "```sql\nSELECT 1\n```"
    assert tokens == 150
    assert seen["path"] == "/api/chat"
    assert seen["body"]["model"] == "llama3"
    assert seen["body"]["stream"] is False
    assert seen["body"]["messages"][0] == {"role": "system", "content": "instructions"}


@pytest.mark.asyncio
async def test_missing_token_counts_are_zero():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"message": {"content": "hi"}})
    )
    gateway = OllamaGateway(base_url="http://ollama", transport=transport)

    assert await gateway.generate("hello", [], None) == ("hi", 0)


@pytest.mark.asyncio
async def test_server_error_raises_gateway_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="model crashed"))
    gateway = OllamaGateway(base_url="http://ollama", transport=transport)

    with pytest.raises(ModelGatewayError):
        await gateway.generate("hello", [], None)


@pytest.mark.asyncio
async def test_malformed_body_raises_gateway_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"done": True}))
    gateway = OllamaGateway(base_url="http://ollama", transport=transport)

    with pytest.raises(ModelGatewayError):
        await gateway.generate("hello", [], None)


@pytest.mark.asyncio
async def test_connection_failure_raises_gateway_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    gateway = OllamaGateway(base_url="http://ollama", transport=httpx.MockTransport(handler))

    with pytest.raises(ModelGatewayError):
        await gateway.generate("hello", [], None)
