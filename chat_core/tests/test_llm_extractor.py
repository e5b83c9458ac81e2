import pytest

from chat_core.domain.exceptions import ApiError, ExtractorError
from chat_core.solutions.llm_extractor import LLMExtractor, build_extraction_prompt, parse_llm_response
from chat_core.solutions.packager import Packager

from conftest import FakeProvider, SettingsStub


ANSWER = """Here are both:
```elixir
IO.puts "hi"
```
and
```javascript
console.log("hi");
```
"""


def test_extract_two_blocks_without_languages_key(cfg):
    candidate = Packager().package("Print hi in two languages", ANSWER)
    provider = FakeProvider(
        response='{"title": "Print hi", "topics": ["io"], "difficulty": "beginner", "description": "Printing"}'
    )
    metadata = LLMExtractor(provider, cfg).extract(candidate)
    assert metadata.title == "Print hi"
    assert metadata.topics == ["io"]
    assert metadata.difficulty == "beginner"
    assert metadata.languages == []
    assert candidate.languages == ["elixir", "javascript"]
    assert provider.calls[0][1].temperature == 0.3


def test_prompt_mentions_blocks_and_truncates_answer():
    candidate = Packager().package("Question?", "```python\nx\n```\n" + "a" * 5000)
    prompt = build_extraction_prompt(candidate)
    assert "1 code blocks in languages: python" in prompt
    assert "a" * 2001 not in prompt


def test_missing_openai_key_makes_no_call():
    cfg = SettingsStub(solution_extraction_provider="openai", openai_api_key=None)
    provider = FakeProvider(response="{}")
    with pytest.raises(ExtractorError) as exc:
        LLMExtractor(provider, cfg).extract(Packager().package("Question", ANSWER))
    assert exc.value.code == "MISSING_CREDENTIAL"
    assert provider.calls == []


def test_provider_failure(cfg):
    provider = FakeProvider(error=ApiError(code="API_ERROR", message="API returned status 500: boom", http_status=500))
    with pytest.raises(ExtractorError) as exc:
        LLMExtractor(provider, cfg).extract(Packager().package("Question", ANSWER))
    assert exc.value.code == "PROVIDER_FAILURE"


def test_unparsable_response(cfg):
    with pytest.raises(ExtractorError) as exc:
        LLMExtractor(FakeProvider(response="Sorry, no JSON today"), cfg).extract(Packager().package("Q?", ANSWER))
    assert exc.value.code == "UNPARSABLE_RESPONSE"


def test_parse_tolerates_prose_and_wrong_types():
    metadata = parse_llm_response('Sure!\n{"title": 42, "topics": "not a list", "languages": ["go", null]}\nDone.')
    assert metadata.title == "42"
    assert metadata.topics == []
    assert metadata.languages == ["go"]
    assert metadata.description is None


def test_unknown_extraction_provider_is_provider_failure():
    provider = FakeProvider(response="{}")
    with pytest.raises(ExtractorError) as exc:
        LLMExtractor(provider, SettingsStub(solution_extraction_provider="bogus")).extract(
            Packager().package("Question", ANSWER)
        )
    assert exc.value.code == "PROVIDER_FAILURE"
    assert provider.calls == []
