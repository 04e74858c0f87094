"""
Grading and vibe analysis for submissions.

Scored quizzes are graded against the correctness stored on each option at
the time of submission. Vibe quizzes are graded as 0/0; their answers are
turned into (question, answer, category, value) selections and sent to the
model for a personality analysis.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models import Option, Question, Quiz, Submission
from prompts import build_vibe_analysis_prompt, topic_from_title
from quiz_parser import FALLBACK_VIBE_CATEGORY, FALLBACK_VIBE_VALUE, parse_vibe_analysis
from schemas import VibeAnalysis

logger = logging.getLogger("vibecheck.scoring")

STATUS_SUBMITTED = "submitted"
STATUS_SCORED = "scored"
STATUS_ANALYZED = "analyzed"


@dataclass
class GradedAnswer:
    question_id: str
    option_id: str
    is_correct: bool


@dataclass
class GradedSubmission:
    score: int
    max_score: int
    status: str
    answers: List[GradedAnswer] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass
class VibeSelection:
    question: str
    answer: str
    category: str
    value: str
    defaulted: bool = False


def grade_submission(quiz: Quiz, answers: Dict[str, str]) -> GradedSubmission:
    """Grade ``answers`` (question id -> selected option id) against ``quiz``.

    Answers naming a question or option that is not part of the quiz are
    skipped. Each kept answer copies the option's current correctness.
    """
    questions = {q.id: q for q in quiz.questions}
    graded: List[GradedAnswer] = []
    skipped: List[str] = []

    for question_id, option_id in answers.items():
        question = questions.get(question_id)
        if question is None:
            logger.warning("Question %s not found in quiz %s", question_id, quiz.id)
            skipped.append(question_id)
            continue
        option = next((o for o in question.options if o.id == option_id), None)
        if option is None:
            logger.warning("Option %s not found in question %s", option_id, question_id)
            skipped.append(question_id)
            continue
        is_correct = quiz.quiz_type == "scored" and bool(option.is_correct)
        graded.append(GradedAnswer(question_id=question_id, option_id=option_id, is_correct=is_correct))

    if quiz.quiz_type == "scored":
        return GradedSubmission(
            score=sum(1 for a in graded if a.is_correct),
            max_score=len(quiz.questions),
            status=STATUS_SCORED,
            answers=graded,
            skipped=skipped,
        )
    return GradedSubmission(score=0, max_score=0, status=STATUS_SUBMITTED, answers=graded, skipped=skipped)


def _interpretation_of(option: Option):
    if option.interpretations:
        first = option.interpretations[0]
        return first.vibe_category or FALLBACK_VIBE_CATEGORY, first.vibe_value or FALLBACK_VIBE_VALUE
    return FALLBACK_VIBE_CATEGORY, FALLBACK_VIBE_VALUE


def _selected_option(question: Question, option_id: Optional[str]) -> Optional[Option]:
    if option_id is None:
        return None
    return next((o for o in question.options if o.id == option_id), None)


def collect_vibe_selections(quiz: Quiz, submission: Submission) -> List[VibeSelection]:
    """One selection per question, in display order.

    Unanswered questions default to their first option and are flagged
    ``defaulted``.
    """
    chosen = {a.question_id: a.selected_option_id for a in submission.answers}
    selections: List[VibeSelection] = []

    for question in sorted(quiz.questions, key=lambda q: q.order_num):
        options = sorted(question.options, key=lambda o: o.order_num)
        if not options:
            logger.warning("Question %s has no options, leaving it out of the analysis", question.id)
            continue

        option = _selected_option(question, chosen.get(question.id))
        defaulted = option is None
        if defaulted:
            logger.info("Question %s unanswered in submission %s, defaulting to first option",
                        question.id, submission.id)
            option = options[0]

        category, value = _interpretation_of(option)
        selections.append(VibeSelection(
            question=question.question,
            answer=option.option_text,
            category=category,
            value=value,
            defaulted=defaulted,
        ))

    return selections


def analyze_vibe(quiz: Quiz, submission: Submission, client, model: Optional[str] = None) -> VibeAnalysis:
    """Ask the model for a personality analysis of a vibe submission.

    Generation errors propagate; an unparseable reply yields the canned
    fallback analysis.
    """
    topic = quiz.topic or topic_from_title(quiz.title)
    selections = collect_vibe_selections(quiz, submission)
    prompt = build_vibe_analysis_prompt(topic, selections)
    text = client.generate(prompt, model)
    return parse_vibe_analysis(text, topic)
