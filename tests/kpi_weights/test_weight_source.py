import json
from unittest.mock import patch

import pytest

from kpi_weights.catalog import KPI_CATALOG
from kpi_weights.errors import InvalidInput, UpstreamUnavailable
from kpi_weights.weight_source import (
    SOURCE_AI,
    SOURCE_DEFAULT,
    generate_project_weights,
    get_default_weights,
    parse_weight_response,
    resolve_project_weights,
)

PROJECT = {"name": "Ring Road Phase 2", "department": "Works", "complexity": "High"}

# Raw JSON with a duplicate key, which a plain dict parse would collapse
DUPLICATE_ANSWER = (
    '{"Survey Accuracy": {"fieldWeight": 30, "hqWeight": 10},'
    ' "File Disposal Rate": {"fieldWeight": 30, "hqWeight": 40},'
    ' "Survey Accuracy": {"fieldWeight": 40, "hqWeight": 5}}'
)


def _channel_total(weights, channel):
    return round(sum(pair[channel] for pair in weights.values()), 2)


def test_default_weights_cover_the_catalog_and_sum_to_100():
    weights = get_default_weights()
    assert set(weights) == set(KPI_CATALOG)
    assert _channel_total(weights, "fieldWeight") == 100
    assert _channel_total(weights, "hqWeight") == 100


def test_duplicate_names_are_merged_then_normalized():
    assert parse_weight_response(DUPLICATE_ANSWER) == {
        "Survey Accuracy": {"fieldWeight": 57.14, "hqWeight": 20.0},
        "File Disposal Rate": {"fieldWeight": 42.86, "hqWeight": 80.0},
    }


def test_markdown_fence_is_stripped():
    text = "```json\n" + json.dumps({"Responsiveness": {"fieldWeight": 10, "hqWeight": 10}}) + "\n```"
    assert parse_weight_response(text) == {"Responsiveness": {"fieldWeight": 100.0, "hqWeight": 100.0}}


def test_wrapped_answer_is_accepted():
    text = json.dumps({"kpiWeights": {"Responsiveness": {"fieldWeight": 1, "hqWeight": 2}}})
    assert parse_weight_response(text) == {"Responsiveness": {"fieldWeight": 100.0, "hqWeight": 100.0}}


def test_invalid_entries_and_unknown_names_are_dropped():
    text = json.dumps(
        {
            "Survey Accuracy": {"fieldWeight": "ten", "hqWeight": 5},
            "Quality of Drafting": {"fieldWeight": -4, "hqWeight": 5},
            "Invented KPI": {"fieldWeight": 90, "hqWeight": 90},
            "Responsiveness": {"fieldWeight": 20, "hqWeight": 5},
            "Digital Adoption": [1, 2],
        }
    )
    assert parse_weight_response(text) == {"Responsiveness": {"fieldWeight": 100.0, "hqWeight": 100.0}}


@pytest.mark.parametrize(
    "text",
    [
        "not json at all",
        "[1, 2, 3]",
        "{}",
        '{"Invented KPI": {"fieldWeight": 50, "hqWeight": 50}}',
        '{"Survey Accuracy": {"fieldWeight": 0, "hqWeight": 0}}',
    ],
)
def test_unusable_answers_fail_closed(text):
    with pytest.raises(InvalidInput):
        parse_weight_response(text)


def test_missing_api_key_is_upstream_unavailable():
    with pytest.raises(UpstreamUnavailable):
        generate_project_weights(PROJECT)


def test_generate_calls_gemini_with_timeout(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("GEMINI_TIMEOUT_SEC", "7")
    with patch("kpi_weights.weight_source.genai") as genai_mock:
        model = genai_mock.GenerativeModel.return_value
        model.generate_content.return_value.text = DUPLICATE_ANSWER

        weights = generate_project_weights(PROJECT)

    genai_mock.configure.assert_called_once_with(api_key="test-key")
    prompt = model.generate_content.call_args.args[0]
    assert "Ring Road Phase 2" in prompt
    assert all(name in prompt for name in KPI_CATALOG)
    assert model.generate_content.call_args.kwargs["request_options"] == {"timeout": 7.0}
    assert weights["Survey Accuracy"] == {"fieldWeight": 57.14, "hqWeight": 20.0}


def test_resolve_uses_ai_answer(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    with patch("kpi_weights.weight_source.genai") as genai_mock:
        genai_mock.GenerativeModel.return_value.generate_content.return_value.text = DUPLICATE_ANSWER
        weights, source = resolve_project_weights(PROJECT)

    assert source == SOURCE_AI
    assert set(weights) == {"Survey Accuracy", "File Disposal Rate"}


def test_resolve_falls_back_without_api_key():
    with patch("kpi_weights.weight_source.genai") as genai_mock:
        weights, source = resolve_project_weights(PROJECT)

    genai_mock.GenerativeModel.assert_not_called()
    assert source == SOURCE_DEFAULT
    assert weights == get_default_weights()


def test_resolve_falls_back_on_timeout(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    with patch("kpi_weights.weight_source.genai") as genai_mock:
        genai_mock.GenerativeModel.return_value.generate_content.side_effect = TimeoutError("deadline exceeded")
        weights, source = resolve_project_weights(PROJECT)

    assert source == SOURCE_DEFAULT
    assert weights == get_default_weights()


def test_resolve_falls_back_on_garbage(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    with patch("kpi_weights.weight_source.genai") as genai_mock:
        genai_mock.GenerativeModel.return_value.generate_content.return_value.text = "Sorry, I cannot help with that."
        weights, source = resolve_project_weights(PROJECT)

    assert source == SOURCE_DEFAULT
    assert weights == get_default_weights()
