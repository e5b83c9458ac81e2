import json

import pytest

from chat_core.domain.exceptions import NetworkError, RouterError
from chat_core.domain.models import SolutionCandidate
from chat_core.solutions.library import InMemorySolutionLibrary
from chat_core.solutions.router import SolutionRouter, build_matching_prompt

from conftest import FakeProvider, SettingsStub


POOL = [
    SolutionCandidate(
        id="s1",
        query="How do I reverse a list in Elixir?",
        answer="```elixir\nEnum.reverse(list)\n```",
        title="Reverse a list",
        topics=["lists", "enum"],
        difficulty="beginner",
        description="Use Enum.reverse/1",
    ),
    SolutionCandidate(id="s2", query="Read a file in Python", answer="```python\nopen(p).read()\n```"),
]


def _reply(best_match_id, confidence, reasoning="similar"):
    return json.dumps({"best_match_id": best_match_id, "confidence": confidence, "reasoning": reasoning})


def test_match_above_threshold_is_accepted(cfg):
    provider = FakeProvider(response=_reply("s1", 0.88))
    result = SolutionRouter(provider, cfg).find_match("reverse a list elixir", POOL, 0.75)
    assert result.accepted is True
    assert result.solution_id == "s1"
    assert result.confidence == 0.88
    assert len(provider.calls) == 1
    assert provider.calls[0][1].temperature == 0.1


def test_match_below_threshold_keeps_confidence(cfg):
    provider = FakeProvider(response="```json\n" + _reply("s1", 0.5) + "\n```")
    result = SolutionRouter(provider, cfg).find_match("reverse a list", POOL, 0.75)
    assert result.accepted is False
    assert result.solution_id == "s1"
    assert result.confidence == 0.5


def test_threshold_is_inclusive(cfg):
    provider = FakeProvider(response=_reply("s2", 0.75))
    assert SolutionRouter(provider, cfg).find_match("read file", POOL, 0.75).accepted is True


def test_null_id_is_no_match(cfg):
    provider = FakeProvider(response=_reply(None, 0.2, "nothing relevant"))
    result = SolutionRouter(provider, cfg).find_match("deploy to k8s", POOL, 0.75)
    assert result.solution_id is None
    assert result.accepted is False
    assert result.confidence == 0.2
    assert result.reasoning == "nothing relevant"


def test_unknown_id_is_unparsable(cfg):
    provider = FakeProvider(response=_reply("s99", 0.95))
    with pytest.raises(RouterError) as exc:
        SolutionRouter(provider, cfg).find_match("reverse", POOL, 0.75)
    assert exc.value.code == "UNPARSABLE_RESPONSE"
    assert exc.value.extra["confidence"] == 0.95


def test_prose_response_is_unparsable(cfg):
    provider = FakeProvider(response="I think the first one matches.")
    with pytest.raises(RouterError) as exc:
        SolutionRouter(provider, cfg).find_match("reverse", POOL, 0.75)
    assert exc.value.code == "UNPARSABLE_RESPONSE"


def test_empty_pool_makes_no_call(cfg):
    provider = FakeProvider(response=_reply("s1", 0.9))
    with pytest.raises(RouterError) as exc:
        SolutionRouter(provider, cfg).find_match("reverse", [], 0.75)
    assert exc.value.code == "EMPTY_POOL"
    assert provider.calls == []


def test_empty_query_makes_no_call(cfg):
    provider = FakeProvider(response=_reply("s1", 0.9))
    result = SolutionRouter(provider, cfg).find_match("   ", POOL, 0.75)
    assert result.accepted is False
    assert provider.calls == []


def test_provider_failure(cfg):
    provider = FakeProvider(error=NetworkError(code="NETWORK_ERROR", message="refused"))
    with pytest.raises(RouterError) as exc:
        SolutionRouter(provider, cfg).find_match("reverse", POOL, 0.75)
    assert exc.value.code == "PROVIDER_FAILURE"


def test_confidence_is_clamped(cfg):
    provider = FakeProvider(response=_reply("s1", 7))
    assert SolutionRouter(provider, cfg).find_match("reverse", POOL, 0.75).confidence == 1.0


def test_route_uses_settings(cfg):
    library = InMemorySolutionLibrary(POOL)
    provider = FakeProvider(response=_reply("s2", 0.8))
    result = SolutionRouter(provider, SettingsStub(solution_router_threshold=0.9)).route("read file", library)
    assert result.solution_id == "s2"
    assert result.accepted is False


def test_route_disabled():
    provider = FakeProvider(response=_reply("s1", 0.9))
    router = SolutionRouter(provider, SettingsStub(enable_solution_router=False))
    with pytest.raises(RouterError) as exc:
        router.route("reverse", InMemorySolutionLibrary(POOL))
    assert exc.value.code == "ROUTER_DISABLED"
    assert provider.calls == []


def test_matching_prompt_lists_every_solution():
    prompt = build_matching_prompt("reverse a list", POOL)
    assert '"reverse a list"' in prompt
    assert "ID: s1" in prompt and "ID: s2" in prompt
    assert "Topics: lists, enum" in prompt
    assert "Title: Untitled" in prompt
    assert prompt.count("\n---\n") == 1


def test_unknown_extraction_provider_is_provider_failure():
    provider = FakeProvider(response=_reply("s1", 0.9))
    with pytest.raises(RouterError) as exc:
        SolutionRouter(provider, SettingsStub(solution_extraction_provider="bogus")).find_match("reverse", POOL, 0.75)
    assert exc.value.code == "PROVIDER_FAILURE"
    assert exc.value.extra["cause"] == "UNKNOWN_PROVIDER"
    assert provider.calls == []


def test_deeply_nested_response_is_unparsable(cfg):
    provider = FakeProvider(response='{"best_match_id": ' + "[" * 200000 + "]" * 200000 + "}")
    with pytest.raises(RouterError) as exc:
        SolutionRouter(provider, cfg).find_match("reverse", POOL, 0.75)
    assert exc.value.code == "UNPARSABLE_RESPONSE"
