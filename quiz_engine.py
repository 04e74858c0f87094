"""
Quiz generation pipeline: prompt -> model -> parse/repair.
"""
import logging
from typing import Optional

from error_handling import QuizGenerationError
from logger import log_execution_time, vibecheck_logger
from prompts import build_quiz_prompt
from quiz_parser import Err, parse_quiz_response
from schemas import QuizDraft

logger = logging.getLogger("vibecheck.quiz_engine")


@log_execution_time(vibecheck_logger, "Quiz generation")
def generate_quiz(
    client,
    topic: str,
    num_questions: int,
    difficulty: str,
    quiz_type: str = "scored",
    model: Optional[str] = None,
) -> QuizDraft:
    """
    Generate a validated quiz draft for ``topic``.

    The draft has exactly ``num_questions`` questions of 4 options each, or
    ``QuizGenerationError`` is raised with the reason.
    """
    prompt = build_quiz_prompt(topic, num_questions, difficulty, quiz_type)
    logger.info("Generating %s quiz about %r with %d questions (%s)", quiz_type, topic, num_questions, difficulty)

    text = client.generate(prompt, model)

    result = parse_quiz_response(text, topic, quiz_type, expected_count=num_questions)
    if isinstance(result, Err):
        logger.error("Generated content rejected: %s", result.reason)
        raise QuizGenerationError(result.reason, details={"raw_preview": text[:200]})

    draft = result.value
    logger.info("Quiz generated successfully with %d questions", len(draft.questions))
    return draft
