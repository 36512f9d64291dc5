"""Tests for casechat/evaluation.py."""

import json
import logging
from unittest.mock import AsyncMock

import pytest

from casechat.evaluation import (
    NO_SUMMARY,
    RUBRIC_QUESTIONS,
    EvaluationParseError,
    build_coach_prompt,
    clean_json_string,
    evaluate_conversation,
    format_transcript,
    normalize_evaluation,
    parse_evaluation,
)


# --- clean_json_string ---

def test_fenced_json_parses_like_bare_json():
    fenced = '```json\n{"a":1}\n```'
    assert json.loads(clean_json_string(fenced)) == json.loads('{"a":1}')


def test_plain_fence_without_language_tag():
    assert clean_json_string('```\n{"a": 2}\n```') == '{"a": 2}'


def test_surrounding_prose_is_sliced_away():
    text = 'Here is my evaluation:\n{"summary": "ok"}\nHope that helps!'
    assert clean_json_string(text) == '{"summary": "ok"}'


def test_text_without_braces_is_left_alone():
    assert clean_json_string("  no json here  ") == "no json here"


# --- normalize_evaluation ---

def test_question_score_schema_sums_to_total():
    raw = {"q1_score": 3, "q1_feedback": "a", "q2_score": 4, "q2_feedback": "b", "q3_score": 2, "q3_feedback": "c"}
    result = normalize_evaluation(raw)
    assert len(result.criteria) == 3
    assert result.total_score == 9
    assert [c.question for c in result.criteria] == list(RUBRIC_QUESTIONS)
    assert [c.feedback for c in result.criteria] == ["a", "b", "c"]


def test_explicit_total_wins_over_sum():
    raw = {"criteria": [{"question": "x", "score": 1, "feedback": ""}], "total_score": 10}
    assert normalize_evaluation(raw).total_score == 10


def test_total_score_key_priority():
    raw = {"criteria": [], "totalScore": 7, "total_score": 3, "overall_score": 2, "score": 1}
    assert normalize_evaluation(raw).total_score == 7


def test_non_numeric_total_falls_back_to_sum():
    raw = {"criteria": [{"score": 2}, {"score": 3}], "total_score": "n/a"}
    assert normalize_evaluation(raw).total_score == 5


def test_numeric_string_scores_are_accepted():
    raw = {"criteria": [{"question": "x", "score": "4", "feedback": "fine"}]}
    result = normalize_evaluation(raw)
    assert result.criteria[0].score == 4
    assert result.total_score == 4


def test_missing_or_bad_scores_default_to_zero():
    raw = {"criteria": [{"question": "x"}, {"question": "y", "score": "great"}, {"score": None}]}
    result = normalize_evaluation(raw)
    assert [c.score for c in result.criteria] == [0, 0, 0]
    assert result.criteria[2].question == "Question"


def test_integer_too_large_for_float_reads_as_missing():
    huge = "1" + "0" * 400
    result = parse_evaluation(
        f'{{"criteria": [{{"question": "q", "score": {huge}, "feedback": ""}}], "total_score": {huge}}}'
    )
    assert result.criteria[0].score == 0
    assert result.total_score == 0


def test_huge_numeric_string_is_not_a_number():
    assert normalize_evaluation({"hints": "1" + "0" * 400}).hints == 0


def test_criteria_array_takes_priority_over_other_schemas():
    raw = {
        "criteria": [{"question": "explicit", "score": 5, "feedback": ""}],
        "evaluation_criteria": [{"criterion": "alt", "score": 1}],
        "q1_score": 2,
    }
    result = normalize_evaluation(raw)
    assert [c.question for c in result.criteria] == ["explicit"]


def test_evaluation_criteria_uses_criterion_name():
    raw = {"evaluation_criteria": [{"criterion": "Preparation", "score": 4, "feedback": "Well read"}]}
    result = normalize_evaluation(raw)
    assert result.criteria[0].question == "Preparation"
    assert result.criteria[0].feedback == "Well read"


def test_partial_question_scores_still_yield_three_criteria():
    result = normalize_evaluation({"q2_score": 5})
    assert [c.score for c in result.criteria] == [0, 5, 0]
    assert result.total_score == 5


def test_unrecognized_schema_gives_empty_criteria():
    result = normalize_evaluation({"verdict": "good"})
    assert result.criteria == []
    assert result.total_score == 0


def test_summary_fallback_chain():
    assert normalize_evaluation({"summary": "  ", "overall_feedback": "Solid work"}).summary == "Solid work"
    assert normalize_evaluation({"overall_summary": "A", "general_feedback": "B"}).summary == "A"
    assert normalize_evaluation({}).summary == NO_SUMMARY


def test_hints_fallback_chain():
    assert normalize_evaluation({"hints": 2}).hints == 2
    assert normalize_evaluation({"hints_used": "3"}).hints == 3
    assert normalize_evaluation({"hint_count": 1, "total_hints": 4}).hints == 1
    assert normalize_evaluation({"hints": "several"}).hints == 0
    assert normalize_evaluation({}).hints == 0


# --- parse_evaluation ---

def test_parse_evaluation_full_payload():
    raw = """```json
    {
      "criteria": [
        {"question": "Q1", "score": 4, "feedback": "Good prep"},
        {"question": "Q2", "score": 5, "feedback": "Strong answers"}
      ],
      "totalScore": 8,
      "summary": "Well done.",
      "hints": 2
    }
    ```"""
    result = parse_evaluation(raw)
    assert len(result.criteria) == 2
    assert result.total_score == 8
    assert result.summary == "Well done."
    assert result.hints == 2


def test_parse_evaluation_accepts_decoded_mapping():
    result = parse_evaluation({"q1_score": 1, "q2_score": 1, "q3_score": 1})
    assert result.total_score == 3


def test_parse_evaluation_invalid_json_raises():
    with pytest.raises(EvaluationParseError, match="Invalid evaluation JSON"):
        parse_evaluation("{not json at all}")


def test_parse_evaluation_non_object_raises():
    with pytest.raises(EvaluationParseError, match="expected an object"):
        parse_evaluation("[1, 2, 3]")


def test_parse_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_evaluation("nonsense")


def test_degenerate_evaluation_logs_warning(caplog):
    with caplog.at_level(logging.WARNING):
        result = parse_evaluation('{"verdict": "unclear"}')
    assert result.criteria == []
    assert any("appears empty" in msg for msg in caplog.messages)


def test_healthy_evaluation_does_not_warn(caplog):
    with caplog.at_level(logging.WARNING):
        parse_evaluation('{"q1_score": 3, "q2_score": 3, "q3_score": 3, "summary": "Fine."}')
    assert not any("appears empty" in msg for msg in caplog.messages)


# --- prompt building and the end-to-end helper ---

def test_format_transcript_labels_speakers(sample_history):
    transcript = format_transcript(sample_history)
    assert transcript.split("\n\n") == [
        "Student: Hello, I read the case.",
        "CEO: Great. What would you do?",
        "Student: Open the second store.",
    ]


def test_build_coach_prompt_fills_placeholders(sample_prompts_config, sample_case):
    prompt = build_coach_prompt(sample_prompts_config.coach, "Student: hi", "Ada Lovelace", sample_case, free_hints=2)
    assert "Malawi's Pizza" in prompt
    assert "Kent Bowen" in prompt
    assert "Ada Lovelace" in prompt
    assert "2 hints" in prompt
    assert "Student: hi" in prompt


async def test_evaluate_conversation_routes_and_normalizes(sample_prompts_config, sample_case, sample_history):
    router = AsyncMock()
    router.evaluate = AsyncMock(return_value='{"q1_score": 4, "q2_score": 4, "q3_score": 5, "summary": "Great."}')

    result = await evaluate_conversation(
        router, "gpt-4o", sample_history, sample_case, "Ada Lovelace", sample_prompts_config
    )

    assert result.total_score == 13
    assert result.summary == "Great."
    model_id, prompt, config = router.evaluate.await_args.args
    assert model_id == "gpt-4o"
    assert "CEO: Great. What would you do?" in prompt
    assert config is None


async def test_evaluate_conversation_propagates_parse_errors(sample_prompts_config, sample_case, sample_history):
    router = AsyncMock()
    router.evaluate = AsyncMock(return_value="I'm sorry, I can't do that.")
    with pytest.raises(EvaluationParseError):
        await evaluate_conversation(
            router, "gpt-4o", sample_history, sample_case, "Ada", sample_prompts_config
        )
