import pytest

from hci_grader.config import get_settings
from hci_grader.exceptions import LLMNotConfiguredError, MalformedResponseError
from hci_grader.schemas.agents import SuggestionResponse
from hci_grader.services.ai import (
    OpenRouterJSONClient,
    parse_json_payload,
    strip_code_fence,
    validate_payload,
)


def test_strip_code_fence() -> None:
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


def test_parse_json_payload_rejects_non_objects() -> None:
    with pytest.raises(MalformedResponseError):
        parse_json_payload("[1, 2]")
    with pytest.raises(MalformedResponseError):
        parse_json_payload("Sure! Here is the JSON")


def test_validate_payload_wraps_schema_errors() -> None:
    with pytest.raises(MalformedResponseError):
        validate_payload(SuggestionResponse, {"suggestions": [{"rubricId": "x"}]})


def test_missing_api_key_is_reported_before_calling_provider() -> None:
    client = OpenRouterJSONClient(get_settings(), api_key=None)
    assert client.is_available is False
    with pytest.raises(LLMNotConfiguredError) as exc_info:
        client.complete_json("system", "user", "openai/gpt-4o")
    assert exc_info.value.status_code == 400
