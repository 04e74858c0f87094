"""Tests for JSON extraction, validation and repair of model output."""

import json

import pytest

from quiz_parser import (
    Err,
    Ok,
    extract_json_object,
    parse_quiz_response,
    parse_vibe_analysis,
    validate_authored_quiz,
)
from schemas import OptionDraft, QuestionDraft, QuizDraft


def _scored(options):
    return json.dumps({"title": "T", "questions": [{"question": "Q?", "options": options}]})


def _options(flags):
    return [{"text": f"opt{i}", "isCorrect": flag} for i, flag in enumerate(flags)]


def test_extract_direct_json() -> None:
    assert extract_json_object('{"a": 1}') == {"a": 1}


def test_extract_json_wrapped_in_prose_and_fences() -> None:
    text = 'Sure! Here is your quiz:\n```json\n{"title": "X", "nested": {"b": 2}}\n```\nEnjoy!'
    assert extract_json_object(text) == {"title": "X", "nested": {"b": 2}}


@pytest.mark.parametrize("text", ["", "no json here", "{not valid json}", "[1, 2, 3]"])
def test_extract_returns_none_when_no_object(text) -> None:
    assert extract_json_object(text) is None


def test_unparseable_text_is_err() -> None:
    result = parse_quiz_response("I cannot help with that.", "Space", "scored")
    assert isinstance(result, Err)
    assert "Could not parse" in result.reason


def test_scenario_a_single_scored_question(quiz_json) -> None:
    """One question, four options, exactly one correct survives unchanged."""
    result = parse_quiz_response(quiz_json("scored", 1), "Capitals of Europe", "scored", expected_count=1)
    assert isinstance(result, Ok)
    quiz = result.value
    assert quiz.title == "Capitals of Europe Quiz"
    assert quiz.quiz_type == "scored"
    assert len(quiz.questions) == 1
    assert [o.is_correct for o in quiz.questions[0].options] == [False, False, True, False]


@pytest.mark.parametrize("count", [3, 5])
def test_wrong_option_count_is_rejected(quiz_json, count) -> None:
    """3 or 5 options are never padded or truncated to 4."""
    result = parse_quiz_response(quiz_json("scored", 2, options_per_question=count), "Space", "scored")
    assert isinstance(result, Err)
    assert result.reason == "Question 1 must have exactly 4 options"


def test_one_malformed_question_fails_the_whole_quiz() -> None:
    data = {
        "title": "T",
        "questions": [
            {"question": "Good?", "options": _options([True, False, False, False])},
            {"question": "Bad?", "options": _options([True, False, False])},
        ],
    }
    result = parse_quiz_response(json.dumps(data), "Space", "scored")
    assert isinstance(result, Err)
    assert result.reason == "Question 2 must have exactly 4 options"


@pytest.mark.parametrize("questions", [[], None, "not a list"])
def test_missing_questions_is_rejected(questions) -> None:
    result = parse_quiz_response(json.dumps({"title": "T", "questions": questions}), "Space", "scored")
    assert isinstance(result, Err)
    assert "at least one question" in result.reason


def test_question_count_must_match_request(quiz_json) -> None:
    result = parse_quiz_response(quiz_json("scored", 4), "Space", "scored", expected_count=5)
    assert isinstance(result, Err)
    assert "Expected 5 questions" in result.reason


@pytest.mark.parametrize(
    "flags",
    [
        [False, False, False, False],
        [False, True, True, False],
        [True, True, True, True],
    ],
)
def test_scored_correctness_repaired_to_first_option(flags) -> None:
    result = parse_quiz_response(_scored(_options(flags)), "Space", "scored")
    assert isinstance(result, Ok)
    assert [o.is_correct for o in result.value.questions[0].options] == [True, False, False, False]


def test_scored_missing_flags_count_as_incorrect() -> None:
    options = [{"text": "a"}, {"text": "b", "isCorrect": "true"}, {"text": "c"}, {"text": "d"}]
    result = parse_quiz_response(_scored(options), "Space", "scored")
    assert isinstance(result, Ok)
    assert [o.is_correct for o in result.value.questions[0].options] == [False, True, False, False]


def test_missing_title_is_synthesized_per_kind(quiz_json) -> None:
    data = json.loads(quiz_json("vibe", 1))
    del data["title"]
    vibe = parse_quiz_response(json.dumps(data), "Coffee", "vibe")
    assert vibe.value.title == "Coffee Vibe Check"

    data = json.loads(quiz_json("scored", 1))
    data["title"] = "   "
    scored = parse_quiz_response(json.dumps(data), "Coffee", "scored")
    assert scored.value.title == "Coffee Quiz"


def test_missing_question_text_is_synthesized() -> None:
    data = {"questions": [{"options": _options([True, False, False, False])}]}
    result = parse_quiz_response(json.dumps(data), "Space", "scored")
    assert result.value.questions[0].question == "Question 1 about Space"


def test_vibe_tags_repaired_with_fallbacks() -> None:
    options = [
        {"text": "a", "vibeCategory": "enthusiasm", "vibeValue": "high"},
        {"text": "b"},
        {"text": "c", "vibeCategory": "", "vibeValue": 7},
        {"text": "d", "vibeCategory": "style", "isCorrect": True},
    ]
    data = {"title": "V", "questions": [{"question": "Q?", "options": options}]}
    result = parse_quiz_response(json.dumps(data), "Coffee", "vibe")
    assert isinstance(result, Ok)
    opts = result.value.questions[0].options
    assert [(o.vibe_category, o.vibe_value) for o in opts] == [
        ("enthusiasm", "high"),
        ("general", "neutral"),
        ("general", "neutral"),
        ("style", "neutral"),
    ]
    assert all(o.is_correct is None for o in opts)


def test_option_without_text_is_rejected() -> None:
    options = [{"text": "a", "isCorrect": True}, {"text": ""}, {"text": "c"}, {"text": "d"}]
    result = parse_quiz_response(_scored(options), "Space", "scored")
    assert isinstance(result, Err)
    assert result.reason == "Question 1 option 2 has no text"


def test_quiz_type_follows_the_request_not_the_model(quiz_json) -> None:
    result = parse_quiz_response(quiz_json("scored", 1), "Space", "vibe")
    assert result.value.quiz_type == "vibe"
    assert all(o.vibe_category == "general" for o in result.value.questions[0].options)


def test_parsing_is_idempotent() -> None:
    text = "Here you go: " + _scored(_options([False, False, False, False])) + " bye"
    first = parse_quiz_response(text, "Space", "scored", expected_count=1)
    second = parse_quiz_response(text, "Space", "scored", expected_count=1)
    assert first == second
    assert first.value.model_dump() == second.value.model_dump()


def test_every_scored_question_has_exactly_one_correct(quiz_json) -> None:
    data = json.loads(quiz_json("scored", 5))
    data["questions"][1]["options"][2]["isCorrect"] = False
    data["questions"][3]["options"][0]["isCorrect"] = True
    result = parse_quiz_response(json.dumps(data), "Space", "scored", expected_count=5)
    for question in result.value.questions:
        assert sum(1 for o in question.options if o.is_correct) == 1


def _authored(quiz_type, options):
    return QuizDraft(title=" My quiz ", quiz_type=quiz_type, questions=[QuestionDraft(question="Q?", options=options)])


def test_authored_scored_quiz_requires_one_correct_option() -> None:
    draft = _authored("scored", [OptionDraft(text="a", is_correct=True), OptionDraft(text="b", is_correct=True)])
    result = validate_authored_quiz(draft)
    assert isinstance(result, Err)
    assert result.reason == "Question 1 must have exactly one correct option"


def test_authored_quiz_requires_two_options() -> None:
    result = validate_authored_quiz(_authored("scored", [OptionDraft(text="a", is_correct=True)]))
    assert isinstance(result, Err)


def test_authored_vibe_quiz_gets_fallback_tags() -> None:
    draft = _authored("vibe", [OptionDraft(text="a"), OptionDraft(text="b", vibe_category="mood", vibe_value="calm")])
    result = validate_authored_quiz(draft)
    assert isinstance(result, Ok)
    assert result.value.title == "My quiz"
    assert [(o.vibe_category, o.vibe_value) for o in result.value.questions[0].options] == [
        ("general", "neutral"),
        ("mood", "calm"),
    ]


def test_vibe_analysis_parsed_from_prose() -> None:
    text = 'Analysis: {"vibeAnalysis": "You are chill.", "vibeCategories": {"energy": "low", "score": 3}}'
    analysis = parse_vibe_analysis(text, "Coffee")
    assert analysis.vibe_analysis == "You are chill."
    assert analysis.vibe_categories == {"energy": "low", "score": "3"}


@pytest.mark.parametrize("text", ["not json at all", '{"vibeCategories": {"a": "b"}}', '{"vibeAnalysis": "  "}'])
def test_vibe_analysis_falls_back_to_canned_text(text) -> None:
    analysis = parse_vibe_analysis(text, "Coffee")
    assert analysis.vibe_analysis.startswith(
        "Based on your answers, you seem to have an interesting relationship with Coffee."
    )
    assert analysis.vibe_categories == {}


def test_vibe_analysis_ignores_non_object_categories() -> None:
    analysis = parse_vibe_analysis('{"vibeAnalysis": "Bold.", "vibeCategories": ["a", "b"]}', "Coffee")
    assert analysis.vibe_analysis == "Bold."
    assert analysis.vibe_categories == {}
