"""
Parsing and repair of model output.

Model text is untrusted: it may wrap the JSON in prose or code fences, and the
JSON itself may be missing fields. ``parse_quiz_response`` turns it into a
``QuizDraft`` or explains why it cannot. Repairs are deterministic; only
structural problems (no questions, wrong option count, options without text)
are reported as ``Err``.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from prompts import OPTIONS_PER_QUESTION
from schemas import OptionDraft, QuestionDraft, QuizDraft, VibeAnalysis

logger = logging.getLogger("vibecheck.quiz_parser")

T = TypeVar("T")

# Greedy: first "{" to last "}" in the text
JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

FALLBACK_VIBE_CATEGORY = "general"
FALLBACK_VIBE_VALUE = "neutral"
MIN_AUTHORED_OPTIONS = 2


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str


ParseResult = Union[Ok[QuizDraft], Err]


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object out of model text.

    Tries the whole text first, then the greedy brace span. Returns None when
    neither attempt yields a JSON object.
    """
    if not text:
        return None

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Direct JSON parse failed, trying brace extraction")
        match = JSON_OBJECT_RE.search(text)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.debug("Brace-extracted JSON parse failed")
            return None

    return data if isinstance(data, dict) else None


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_marked_correct(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def default_title(topic: str, quiz_type: str) -> str:
    return f"{topic} Quiz" if quiz_type == "scored" else f"{topic} Vibe Check"


def validate_quiz_data(
    data: Dict[str, Any],
    topic: str,
    quiz_type: str,
    expected_count: Optional[int] = None,
) -> ParseResult:
    """Validate a parsed quiz object and repair what can be repaired."""
    title = _clean_text(data.get("title")) or default_title(topic, quiz_type)

    raw_questions = data.get("questions")
    if not isinstance(raw_questions, list) or not raw_questions:
        return Err("The quiz must have at least one question")

    if expected_count is not None and len(raw_questions) != expected_count:
        return Err(f"Expected {expected_count} questions but the model returned {len(raw_questions)}")

    questions: List[QuestionDraft] = []
    for q_index, raw_question in enumerate(raw_questions, start=1):
        if not isinstance(raw_question, dict):
            return Err(f"Question {q_index} is not an object")

        question_text = _clean_text(raw_question.get("question")) or f"Question {q_index} about {topic}"

        raw_options = raw_question.get("options")
        if not isinstance(raw_options, list) or len(raw_options) != OPTIONS_PER_QUESTION:
            return Err(f"Question {q_index} must have exactly {OPTIONS_PER_QUESTION} options")

        options: List[OptionDraft] = []
        for o_index, raw_option in enumerate(raw_options, start=1):
            if not isinstance(raw_option, dict):
                return Err(f"Question {q_index} option {o_index} is not an object")
            option_text = _clean_text(raw_option.get("text"))
            if not option_text:
                return Err(f"Question {q_index} option {o_index} has no text")

            if quiz_type == "scored":
                options.append(OptionDraft(
                    text=option_text,
                    is_correct=_is_marked_correct(raw_option.get("isCorrect")),
                ))
            else:
                options.append(OptionDraft(
                    text=option_text,
                    vibe_category=_clean_text(raw_option.get("vibeCategory")) or FALLBACK_VIBE_CATEGORY,
                    vibe_value=_clean_text(raw_option.get("vibeValue")) or FALLBACK_VIBE_VALUE,
                ))

        if quiz_type == "scored" and sum(1 for o in options if o.is_correct) != 1:
            logger.warning("Question %d has no single correct option; marking the first one correct", q_index)
            for o_index, option in enumerate(options):
                option.is_correct = o_index == 0

        questions.append(QuestionDraft(question=question_text, options=options))

    return Ok(QuizDraft(title=title, quiz_type=quiz_type, questions=questions))


def parse_quiz_response(
    text: str,
    topic: str,
    quiz_type: str,
    expected_count: Optional[int] = None,
) -> ParseResult:
    """Turn raw model text into a validated quiz draft or an ``Err``."""
    data = extract_json_object(text)
    if data is None:
        return Err("Could not parse generated content as a JSON quiz")
    return validate_quiz_data(data, topic, quiz_type, expected_count)


def validate_authored_quiz(draft: QuizDraft) -> ParseResult:
    """
    Check a manually authored quiz.

    Authors are told about mistakes instead of having them repaired, except for
    missing vibe tags which get the same fallback as generated quizzes.
    """
    questions: List[QuestionDraft] = []
    for q_index, question in enumerate(draft.questions, start=1):
        question_text = question.question.strip()
        if not question_text:
            return Err(f"Question {q_index} has no text")
        if len(question.options) < MIN_AUTHORED_OPTIONS:
            return Err(f"Question {q_index} must have at least {MIN_AUTHORED_OPTIONS} options")

        options: List[OptionDraft] = []
        for o_index, option in enumerate(question.options, start=1):
            option_text = option.text.strip()
            if not option_text:
                return Err(f"Question {q_index} option {o_index} has no text")
            if draft.quiz_type == "scored":
                options.append(OptionDraft(text=option_text, is_correct=bool(option.is_correct)))
            else:
                options.append(OptionDraft(
                    text=option_text,
                    vibe_category=_clean_text(option.vibe_category) or FALLBACK_VIBE_CATEGORY,
                    vibe_value=_clean_text(option.vibe_value) or FALLBACK_VIBE_VALUE,
                ))

        if draft.quiz_type == "scored" and sum(1 for o in options if o.is_correct) != 1:
            return Err(f"Question {q_index} must have exactly one correct option")

        questions.append(QuestionDraft(question=question_text, options=options))

    return Ok(QuizDraft(title=draft.title.strip(), quiz_type=draft.quiz_type, questions=questions))


def fallback_vibe_analysis(topic: str) -> VibeAnalysis:
    return VibeAnalysis(
        vibe_analysis=(
            f"Based on your answers, you seem to have an interesting relationship with {topic}. "
            "Your vibe is unique and defies simple categorization!"
        ),
        vibe_categories={},
    )


def parse_vibe_analysis(text: str, topic: str) -> VibeAnalysis:
    """Parse the analysis response, falling back to a canned analysis."""
    data = extract_json_object(text)
    if data is None:
        logger.warning("Could not parse vibe analysis response, using fallback analysis")
        return fallback_vibe_analysis(topic)

    analysis = _clean_text(data.get("vibeAnalysis"))
    if not analysis:
        logger.warning("Vibe analysis response had no analysis text, using fallback analysis")
        return fallback_vibe_analysis(topic)

    raw_categories = data.get("vibeCategories")
    categories: Dict[str, str] = {}
    if isinstance(raw_categories, dict):
        categories = {
            str(key): str(value)
            for key, value in raw_categories.items()
            if value is not None
        }

    return VibeAnalysis(vibe_analysis=analysis, vibe_categories=categories)
