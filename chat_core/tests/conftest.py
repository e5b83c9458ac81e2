import itertools
import json
import queue
import threading
from datetime import datetime, timezone

import pytest

from chat_core.domain.models import Completed, Failed
from chat_core.domain.ports import PersistedMessage


class SettingsStub:
    llm_provider = "ollama"
    temperature = 0.7
    ollama_url = "http://ollama.test"
    ollama_model = "llama3.2"
    openai_api_key = "sk-test"
    openai_base_url = "https://openai.test/v1"
    openai_model = "gpt-4o-mini"
    openai_vision_model = "gpt-4o"
    http_timeout = 1.0
    enable_solution_router = True
    solution_router_threshold = 0.75
    solution_extraction_provider = "ollama"
    solution_extraction_ollama_model = "llama3.2"
    solution_extraction_openai_model = "gpt-4o-mini"
    orchestrator_enabled = True
    orchestrator_prompts = {}

    def __init__(self, **overrides):
        for key, value in overrides.items():
            setattr(self, key, value)


class FakeProvider:
    """按脚本返回结果的 Provider：complete 返回 response，stream_complete 逐段回调 chunks。"""

    supports_vision = False

    def __init__(self, name="ollama", response="", chunks=(), error=None, gate=None):
        self.name = name
        self.response = response
        self.chunks = list(chunks)
        self.error = error
        self.gate = gate
        self.calls = []

    def complete(self, messages, options):
        self.calls.append((messages, options))
        if self.error:
            raise self.error
        return self.response

    def stream_complete(self, messages, on_chunk, options):
        self.calls.append((messages, options))
        for chunk in self.chunks:
            on_chunk(chunk)
        if self.gate is not None:
            self.gate.wait(5)
        if self.error:
            raise self.error

    def check_liveness(self, options):
        return "fake"

    def list_models(self, options):
        return []


class RecordingSink:
    def __init__(self, fail=False):
        self.fail = fail
        self.saved = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def save(self, conversation_id, role, content):
        if self.fail:
            raise RuntimeError("db down")
        with self._lock:
            self.saved.append((conversation_id, role, content))
            msg_id = f"m{next(self._ids)}"
        return PersistedMessage(
            id=msg_id,
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=datetime.now(timezone.utc),
        )


def collect_until_terminal(subscription, timeout=5.0):
    events = []
    while True:
        try:
            event = subscription.get(timeout=timeout)
        except queue.Empty:
            raise AssertionError(f"no terminal event, got {events!r}")
        events.append(event)
        if isinstance(event, (Completed, Failed)):
            return events


@pytest.fixture
def cfg():
    return SettingsStub()


@pytest.fixture
def sink():
    return RecordingSink()


class FakeResponse:
    def __init__(self, status_code=200, body=None, lines=(), headers=None):
        self.status_code = status_code
        self.headers = headers or {}
        self._body = body
        self._lines = list(lines)

    @property
    def text(self):
        return self._body if isinstance(self._body, str) else json.dumps(self._body)

    def json(self):
        if isinstance(self._body, str):
            return json.loads(self._body)
        return self._body

    def read(self):
        return self.text.encode()

    def iter_lines(self):
        for line in self._lines:
            yield line


class StreamContext:
    def __init__(self, response):
        self._response = response

    def __enter__(self):
        return self._response

    def __exit__(self, *args):
        return False


def make_client_cls(response=None, captured=None, error=None):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, **_):
            if error:
                raise error
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json
            return response

        def get(self, url, **_):
            if error:
                raise error
            if captured is not None:
                captured["url"] = url
            return response

        def stream(self, method, url, json=None, **_):
            if error:
                raise error
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json
            return StreamContext(response)

    return Client
