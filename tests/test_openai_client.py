"""Tests for the OpenAI-compatible HTTP client."""

import json

import httpx
import numpy as np
import pytest

from helpcenter.clients.openai_client import OpenAIClient, create_openai_client
from helpcenter.common.errors import GenerationError


def make_client(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAIClient("sk-test", base_url="https://llm.test/v1/", http_client=http_client)


def chat_response(content):
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def test_client_requires_api_key(config):
    with pytest.raises(ValueError):
        OpenAIClient("")

    client = create_openai_client(config)
    assert client.embedding_model == config.embedding_model
    assert client.base_url == "https://api.openai.com/v1"


@pytest.mark.asyncio
async def test_complete_json_request_and_parse():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return chat_response('{"search_terms": ["refund policy"]}')

    client = make_client(handler)
    result = await client.complete_json([{"role": "user", "content": "hi"}])

    assert result == {"search_terms": ["refund policy"]}
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4-turbo"
    assert seen["body"]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        chat_response("not json"),
        chat_response('["a list"]'),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, text="<html>"),
        httpx.Response(500, json={"error": "overloaded"}),
    ],
)
async def test_complete_json_failures(response):
    client = make_client(lambda request: response)
    with pytest.raises(GenerationError):
        await client.complete_json([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_transport_timeout_is_generation_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = make_client(handler)
    with pytest.raises(GenerationError, match="timed out"):
        await client.embed(["billing"])


@pytest.mark.asyncio
async def test_embed_orders_by_index():
    vectors_by_text = {"first": [1.0, 0.0], "second": [0.0, 1.0]}
    seen_inputs = []

    def handler(request):
        texts = json.loads(request.content)["input"]
        seen_inputs.append(texts)
        data = [
            {"index": index, "embedding": vectors_by_text[text]}
            for index, text in enumerate(texts)
        ]
        return httpx.Response(200, json={"data": list(reversed(data))})

    client = make_client(handler)
    vectors = await client.embed(["first", "second"])

    assert len(vectors) == 2
    np.testing.assert_allclose(vectors[0], [1.0, 0.0])
    np.testing.assert_allclose(vectors[1], [0.0, 1.0])
    assert vectors[0].dtype == np.float32

    np.testing.assert_allclose(await client.embed_one("first"), [1.0, 0.0])
    assert seen_inputs == [["first", "second"], ["first"]]


@pytest.mark.asyncio
async def test_embed_count_mismatch():
    client = make_client(lambda request: httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]}))
    with pytest.raises(GenerationError):
        await client.embed(["a", "b"])


@pytest.mark.asyncio
async def test_embed_empty_input_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert await make_client(handler).embed([]) == []


@pytest.mark.asyncio
async def test_close_leaves_injected_client_open():
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    client = OpenAIClient("sk-test", http_client=http_client)

    await client.close()

    assert not http_client.is_closed
    await http_client.aclose()
