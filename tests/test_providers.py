import json
import unittest

import httpx
import openai
from openai import AsyncOpenAI

from crosstalk.config import Activation, AppConfig
from crosstalk.core.conversation import Conversation
from crosstalk.core.errors import (
    AuthError,
    ConfigurationError,
    InvalidRequest,
    ProviderError,
    RateLimited,
    TransportError,
)
from crosstalk.core.protocol import CancellationToken, Completed, Failed, Fragment
from crosstalk.core.registry import ProviderIdentifier
from crosstalk.providers import AnthropicBackend, OllamaBackend, OpenAIBackend, populate
from crosstalk.providers.anthropic import build_payload
from crosstalk.providers.http import error_detail


def conversation(*prompts, system=None):
    conv = Conversation(system_prompt=system)
    for prompt in prompts:
        conv.add_user_message(prompt)
    return conv


async def run(backend, conv, model="m"):
    return [i async for i in backend.complete(conv, model, CancellationToken())]


def ndjson(*objects):
    return "".join(json.dumps(o) + "\n" for o in objects).encode()


def sse(*events):
    return "".join(f"event: {e.get('type', 'message')}\ndata: {json.dumps(e)}\n\n" for e in events).encode()


class TestOllamaBackend(unittest.IsolatedAsyncioTestCase):
    def make_backend(self, handler):
        self.requests = []

        def recording(request):
            self.requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording), base_url="http://ollama.test")
        return OllamaBackend("http://ollama.test", client=client)

    async def test_stream_reply(self):
        body = ndjson(
            {"message": {"role": "assistant", "content": "Hel"}, "done": False},
            {"message": {"role": "assistant", "content": "lo"}, "done": False},
            {"message": {"role": "assistant", "content": ""}, "done": True},
        )
        backend = self.make_backend(lambda request: httpx.Response(200, content=body))

        increments = await run(backend, conversation("hi", system="terse"), model="llama3")

        self.assertEqual(increments[:2], [Fragment("Hel"), Fragment("lo")])
        self.assertIsInstance(increments[-1], Completed)
        self.assertEqual(increments[-1].message.content, "Hello")
        sent = json.loads(self.requests[0].content)
        self.assertEqual(self.requests[0].url.path, "/api/chat")
        self.assertEqual(sent["model"], "llama3")
        self.assertTrue(sent["stream"])
        self.assertEqual(
            sent["messages"],
            [{"role": "system", "content": "terse"}, {"role": "user", "content": "hi"}],
        )

    async def test_error_line_fails(self):
        body = ndjson({"message": {"content": "par"}}, {"error": "model crashed"})
        backend = self.make_backend(lambda request: httpx.Response(200, content=body))

        increments = await run(backend, conversation("hi"))

        self.assertEqual(increments[0], Fragment("par"))
        self.assertIsInstance(increments[-1].error, ProviderError)
        self.assertIn("model crashed", increments[-1].error.describe())

    async def test_missing_model_is_invalid_request(self):
        backend = self.make_backend(
            lambda request: httpx.Response(404, json={"error": "model 'nope' not found"})
        )

        increments = await run(backend, conversation("hi"), model="nope")

        self.assertEqual(len(increments), 1)
        self.assertIsInstance(increments[0].error, InvalidRequest)
        self.assertEqual(increments[0].error.describe(), "invalid request: [ollama] model 'nope' not found")

    async def test_connection_refused_is_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend = self.make_backend(refuse)

        increments = await run(backend, conversation("hi"))

        self.assertIsInstance(increments[-1], Failed)
        self.assertIsInstance(increments[-1].error, TransportError)

    async def test_list_models(self):
        backend = self.make_backend(
            lambda request: httpx.Response(200, json={"models": [{"name": "llama3:latest"}, {"name": "qwen2"}]})
        )

        self.assertEqual(await backend.list_models(), ["llama3:latest", "qwen2"])
        self.assertEqual(self.requests[0].url.path, "/api/tags")


class TestAnthropicBackend(unittest.IsolatedAsyncioTestCase):
    def make_backend(self, handler):
        self.requests = []

        def recording(request):
            self.requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording), base_url="https://anthropic.test")
        return AnthropicBackend("sk-ant-test", client=client)

    async def test_stream_reply(self):
        body = sse(
            {"type": "message_start", "message": {"id": "msg_1"}},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Bon"}},
            {"type": "ping"},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "jour"}},
            {"type": "message_stop"},
        )
        backend = self.make_backend(lambda request: httpx.Response(200, content=body))

        increments = await run(backend, conversation("salut"), model="claude-3-5-haiku-latest")

        self.assertEqual([i.text for i in increments if isinstance(i, Fragment)], ["Bon", "jour"])
        self.assertEqual(increments[-1].message.content, "Bonjour")
        request = self.requests[0]
        self.assertEqual(request.url.path, "/v1/messages")
        self.assertEqual(request.headers["x-api-key"], "sk-ant-test")
        self.assertEqual(request.headers["anthropic-version"], "2023-06-01")

    async def test_overloaded_event(self):
        body = sse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
        backend = self.make_backend(lambda request: httpx.Response(200, content=body))

        increments = await run(backend, conversation("hi"))

        self.assertIsInstance(increments[-1].error, ProviderError)
        self.assertIn("Overloaded", increments[-1].error.describe())

    async def test_http_status_classification(self):
        cases = [
            (401, {}, AuthError),
            (429, {"retry-after": "30"}, RateLimited),
            (400, {}, InvalidRequest),
            (529, {}, ProviderError),
        ]
        for status, headers, expected in cases:
            with self.subTest(status=status):
                body = {"type": "error", "error": {"type": "x", "message": f"status {status}"}}
                backend = self.make_backend(
                    lambda request, s=status, h=headers, b=body: httpx.Response(s, headers=h, json=b)
                )
                increments = await run(backend, conversation("hi"))
                error = increments[-1].error
                self.assertIs(type(error), expected)
                self.assertIn(f"status {status}", error.describe())
                if expected is RateLimited:
                    self.assertEqual(error.retry_after, 30)

    def test_build_payload(self):
        conv = conversation("first", system="be kind")
        conv.add_assistant_message("   ")
        conv.add_user_message("second")

        payload = build_payload(conv, "claude", 256)

        self.assertEqual(payload["system"], "be kind")
        self.assertEqual(payload["max_tokens"], 256)
        self.assertEqual([m["role"] for m in payload["messages"]], ["user", "user"])
        self.assertEqual(payload["messages"][1]["content"], [{"type": "text", "text": "second"}])


class TestOpenAIBackend(unittest.IsolatedAsyncioTestCase):
    def make_backend(self, handler):
        client = AsyncOpenAI(
            api_key="sk-test",
            base_url="https://openai.test/v1",
            max_retries=0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        return OpenAIBackend(client)

    @staticmethod
    def chunk(content, finish_reason=None):
        return {
            "id": "chatcmpl-1",
            "object": "chat.completion.chunk",
            "created": 1700000000,
            "model": "gpt-4o",
            "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": finish_reason}],
        }

    async def test_stream_reply(self):
        events = [self.chunk("Hi"), self.chunk(" there"), self.chunk(None, "stop")]
        body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body.encode())

        increments = await run(self.make_backend(handler), conversation("hello"), model="gpt-4o")

        self.assertEqual([i.text for i in increments if isinstance(i, Fragment)], ["Hi", " there"])
        self.assertEqual(increments[-1].message.content, "Hi there")
        self.assertEqual(seen[0]["model"], "gpt-4o")
        self.assertEqual(seen[0]["messages"], [{"role": "user", "content": "hello"}])

    async def test_unauthorized(self):
        backend = self.make_backend(
            lambda request: httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})
        )

        increments = await run(backend, conversation("hello"))

        self.assertIsInstance(increments[-1].error, AuthError)
        self.assertEqual(increments[-1].error.describe(), "authentication failed: Incorrect API key provided")

    def test_classify(self):
        request = httpx.Request("POST", "https://openai.test/v1/chat/completions")
        backend = OpenAIBackend(client=None)

        def status(code, cls, headers=None):
            response = httpx.Response(code, headers=headers or {}, request=request)
            return cls("failed", response=response, body={"message": "detail"})

        limited = backend.classify(status(429, openai.RateLimitError, {"retry-after": "7"}))
        self.assertIsInstance(limited, RateLimited)
        self.assertEqual(limited.retry_after, 7)
        self.assertEqual(limited.message, "detail")
        self.assertIsInstance(backend.classify(status(403, openai.PermissionDeniedError)), AuthError)
        self.assertIsInstance(backend.classify(status(404, openai.NotFoundError)), InvalidRequest)
        self.assertIsInstance(backend.classify(openai.APITimeoutError(request=request)), TransportError)
        server = backend.classify(status(500, openai.InternalServerError))
        self.assertIsInstance(server, ProviderError)
        self.assertEqual(server.message, "HTTP 500: detail")


class TestHttpHelpers(unittest.TestCase):
    def test_error_detail(self):
        self.assertEqual(error_detail('{"error": {"message": "boom"}}'), "boom")
        self.assertEqual(error_detail('{"error": "flat"}'), "flat")
        self.assertEqual(error_detail("plain text "), "plain text")


class TestPopulate(unittest.IsolatedAsyncioTestCase):
    def make_config(self, openai_key=None, anthropic_key=None, ollama=Activation.DISABLED, ollama_models=()):
        config = AppConfig()
        config.providers.openai.api_key = openai_key
        config.providers.anthropic.api_key = anthropic_key
        config.providers.ollama.activate = ollama
        config.providers.ollama.models = list(ollama_models)
        config.providers.ollama.host = "http://ollama.test"
        return config

    def tags_client(self, handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ollama.test")

    async def test_registration_order(self):
        config = self.make_config(openai_key="sk", anthropic_key="sk-ant", ollama=Activation.AUTO, ollama_models=["llama3"])

        registry = await populate(config)

        self.assertEqual(
            [d.identifier for d in registry.providers()],
            [ProviderIdentifier.OPENAI, ProviderIdentifier.ANTHROPIC, ProviderIdentifier.OLLAMA],
        )
        self.assertIsInstance(registry.get(ProviderIdentifier.OPENAI).backend, OpenAIBackend)
        self.assertEqual(registry.get(ProviderIdentifier.OLLAMA).models, ("llama3",))

    async def test_missing_keys_skip_auto_providers(self):
        registry = await populate(self.make_config())
        self.assertEqual(len(registry), 0)

    async def test_enabled_without_key_is_configuration_error(self):
        config = self.make_config()
        config.providers.anthropic.activate = Activation.ENABLED
        with self.assertRaises(ConfigurationError):
            await populate(config)

    async def test_ollama_models_discovered(self):
        client = self.tags_client(lambda request: httpx.Response(200, json={"models": [{"name": "mistral"}]}))

        registry = await populate(self.make_config(ollama=Activation.AUTO), ollama_client=client)

        self.assertEqual(registry.model_names(), ["mistral"])

    async def test_unreachable_ollama(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        registry = await populate(self.make_config(ollama=Activation.AUTO), ollama_client=self.tags_client(refuse))
        self.assertEqual(len(registry), 0)

        with self.assertRaises(ConfigurationError):
            await populate(self.make_config(ollama=Activation.ENABLED), ollama_client=self.tags_client(refuse))
