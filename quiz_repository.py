"""Repository layer for quizzes and submissions.

Every write is one transaction: on any database error the session is rolled
back and ``PersistenceError`` is raised, so a quiz graph either fully exists
or does not exist at all.
"""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from error_handling import (
    InvalidRequestError,
    PermissionDeniedError,
    PersistenceError,
    QuizNotFoundError,
    SubmissionNotFoundError,
)
from models import Answer, Option, OptionInterpretation, Question, Quiz, Submission, VibeResult
from quiz_parser import FALLBACK_VIBE_CATEGORY, FALLBACK_VIBE_VALUE, MIN_AUTHORED_OPTIONS
from schemas import QuizDraft, UpdateQuestionInput, VibeAnalysis
from scoring import STATUS_ANALYZED, GradedSubmission

logger = logging.getLogger("vibecheck.quiz_repository")


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to %s, transaction rolled back: %s", action, e)
        raise PersistenceError(f"Failed to {action}", details=str(e)) from e


def _clean_tag(value: Optional[str]) -> str:
    return value.strip() if value else ""


def _build_option(quiz_type: str, order_num: int, text: str, is_correct: Optional[bool],
                  vibe_category: Optional[str], vibe_value: Optional[str]) -> Option:
    option = Option(
        option_text=text,
        is_correct=bool(is_correct) if quiz_type == "scored" else None,
        order_num=order_num,
    )
    if quiz_type == "vibe":
        option.interpretations.append(OptionInterpretation(
            vibe_category=_clean_tag(vibe_category) or FALLBACK_VIBE_CATEGORY,
            vibe_value=_clean_tag(vibe_value) or FALLBACK_VIBE_VALUE,
        ))
    return option


# --- Quiz graph ---

def create_quiz_graph(
    db: Session,
    draft: QuizDraft,
    owner_id: str,
    description: Optional[str] = None,
    is_public: bool = False,
    topic: Optional[str] = None,
    difficulty: Optional[str] = None,
    title: Optional[str] = None,
) -> Quiz:
    """Insert a quiz with its questions, options and interpretations atomically.

    Questions and options are numbered 1..n in draft order. Correctness is
    stored only for scored quizzes; interpretations only for vibe quizzes.
    """
    quiz = Quiz(
        title=title or draft.title,
        description=description,
        topic=topic,
        difficulty=difficulty,
        is_public=is_public,
        created_by=owner_id,
        quiz_type=draft.quiz_type,
    )
    for q_index, question_draft in enumerate(draft.questions, start=1):
        question = Question(question=question_draft.question, order_num=q_index)
        for o_index, option_draft in enumerate(question_draft.options, start=1):
            question.options.append(_build_option(
                draft.quiz_type,
                o_index,
                option_draft.text,
                option_draft.is_correct,
                option_draft.vibe_category,
                option_draft.vibe_value,
            ))
        quiz.questions.append(question)

    db.add(quiz)
    _commit(db, "create quiz")
    logger.info("Created %s quiz %s with %d questions", quiz.quiz_type, quiz.id, len(quiz.questions))
    return quiz


def get_quiz(db: Session, quiz_id: str) -> Quiz:
    """Fetch a quiz with its full question/option graph, or raise."""
    stmt = (
        select(Quiz)
        .where(Quiz.id == quiz_id)
        .options(
            selectinload(Quiz.questions)
            .selectinload(Question.options)
            .selectinload(Option.interpretations)
        )
    )
    quiz = db.execute(stmt).scalar_one_or_none()
    if quiz is None:
        raise QuizNotFoundError("Quiz not found. It may have been deleted.")
    return quiz


def list_user_quizzes(db: Session, owner_id: str) -> List[Quiz]:
    stmt = select(Quiz).where(Quiz.created_by == owner_id).order_by(Quiz.created_at.desc())
    return list(db.execute(stmt).scalars())


def require_quiz_owner(quiz: Quiz, user_id: str) -> None:
    if quiz.created_by != user_id:
        raise PermissionDeniedError("You do not have permission to modify this quiz")


def _check_listed_ids(listed: Iterable[Optional[str]], existing: Iterable[str], what: str) -> None:
    listed_ids = [item_id for item_id in listed if item_id]
    existing_ids = set(existing)
    if len(listed_ids) != len(set(listed_ids)):
        raise InvalidRequestError(f"Duplicate {what} ids in update")
    unknown = set(listed_ids) - existing_ids
    if unknown:
        raise InvalidRequestError(f"Unknown {what} ids in update", details=sorted(unknown))
    missing = existing_ids - set(listed_ids)
    if missing:
        raise InvalidRequestError(f"Update must list every existing {what}", details=sorted(missing))


def _validate_question_updates(quiz: Quiz, questions: List[UpdateQuestionInput]) -> None:
    if not questions:
        raise InvalidRequestError("A quiz must keep at least one question")
    existing = {q.id: q for q in quiz.questions}
    _check_listed_ids((q.id for q in questions), existing, "question")

    for q_index, question in enumerate(questions, start=1):
        if not question.question.strip():
            raise InvalidRequestError(f"Question {q_index} has no text")
        if len(question.options) < MIN_AUTHORED_OPTIONS:
            raise InvalidRequestError(f"Question {q_index} must have at least {MIN_AUTHORED_OPTIONS} options")
        existing_options = [o.id for o in existing[question.id].options] if question.id else []
        _check_listed_ids((o.id for o in question.options), existing_options, "option")
        if any(not o.option_text.strip() for o in question.options):
            raise InvalidRequestError(f"Question {q_index} has an option without text")
        if quiz.quiz_type == "scored" and sum(1 for o in question.options if o.is_correct) != 1:
            raise InvalidRequestError(f"Question {q_index} must have exactly one correct option")


def update_quiz(
    db: Session,
    quiz: Quiz,
    user_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    is_public: Optional[bool] = None,
    questions: Optional[List[UpdateQuestionInput]] = None,
) -> Quiz:
    """Apply an owner's edits in one transaction.

    Existing questions and options are referenced by id and all of them must
    be listed; entries without an id are new. Display order is the list
    position. The quiz kind and owner never change.
    """
    require_quiz_owner(quiz, user_id)
    if title is not None and not title.strip():
        raise InvalidRequestError("Quiz title is required")
    if questions is not None:
        _validate_question_updates(quiz, questions)

    try:
        if title is not None:
            quiz.title = title.strip()
        if description is not None:
            quiz.description = description
        if is_public is not None:
            quiz.is_public = is_public

        if questions is not None:
            _apply_question_updates(db, quiz, questions)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to update quiz %s, transaction rolled back: %s", quiz.id, e)
        raise PersistenceError("Failed to update quiz", details=str(e)) from e

    _commit(db, "update quiz")
    logger.info("Updated quiz %s", quiz.id)
    return quiz


def _update_interpretation(option: Option, vibe_category: Optional[str], vibe_value: Optional[str]) -> None:
    """Overwrite only the tags given with non-blank text; blank input keeps the stored tag."""
    category, value = _clean_tag(vibe_category), _clean_tag(vibe_value)
    if option.interpretations:
        interpretation = option.interpretations[0]
    else:
        interpretation = OptionInterpretation(vibe_category=FALLBACK_VIBE_CATEGORY, vibe_value=FALLBACK_VIBE_VALUE)
        option.interpretations.append(interpretation)
    if category:
        interpretation.vibe_category = category
    if value:
        interpretation.vibe_value = value


def _apply_question_updates(db: Session, quiz: Quiz, questions: List[UpdateQuestionInput]) -> None:
    existing_questions = {q.id: q for q in quiz.questions}

    # Park current order numbers so renumbering cannot collide with the unique constraints
    for q_park, question in enumerate(quiz.questions, start=1):
        question.order_num = -q_park
        for o_park, option in enumerate(question.options, start=1):
            option.order_num = -o_park
    db.flush()

    for q_index, question_input in enumerate(questions, start=1):
        if question_input.id:
            question = existing_questions[question_input.id]
        else:
            question = Question(order_num=q_index)
            quiz.questions.append(question)
        question.question = question_input.question.strip()
        question.order_num = q_index

        existing_options = {o.id: o for o in question.options}
        for o_index, option_input in enumerate(question_input.options, start=1):
            if option_input.id:
                option = existing_options[option_input.id]
                option.option_text = option_input.option_text.strip()
                option.order_num = o_index
                if quiz.quiz_type == "scored":
                    option.is_correct = bool(option_input.is_correct)
                else:
                    _update_interpretation(option, option_input.vibe_category, option_input.vibe_value)
            else:
                question.options.append(_build_option(
                    quiz.quiz_type,
                    o_index,
                    option_input.option_text.strip(),
                    option_input.is_correct,
                    option_input.vibe_category,
                    option_input.vibe_value,
                ))
    db.flush()


def delete_quiz(db: Session, quiz: Quiz, user_id: str) -> None:
    """Delete a quiz; questions, options, interpretations and submissions go with it."""
    require_quiz_owner(quiz, user_id)
    db.delete(quiz)
    _commit(db, "delete quiz")
    logger.info("Deleted quiz %s", quiz.id)


# --- Submissions ---

def save_submission(db: Session, quiz: Quiz, user_id: str, graded: GradedSubmission) -> Submission:
    """Record a graded attempt and its answers in one transaction."""
    submission = Submission(
        quiz_id=quiz.id,
        user_id=user_id,
        score=graded.score,
        max_score=graded.max_score,
        status=graded.status,
    )
    for answer in graded.answers:
        submission.answers.append(Answer(
            question_id=answer.question_id,
            selected_option_id=answer.option_id,
            is_correct=answer.is_correct,
        ))
    db.add(submission)
    _commit(db, "create submission record")
    logger.info(
        "Recorded submission %s for quiz %s (%d answers, score %d/%d)",
        submission.id, quiz.id, len(submission.answers), submission.score, submission.max_score,
    )
    return submission


def get_submission(db: Session, submission_id: str) -> Submission:
    stmt = (
        select(Submission)
        .where(Submission.id == submission_id)
        .options(selectinload(Submission.answers), selectinload(Submission.vibe_result))
    )
    submission = db.execute(stmt).scalar_one_or_none()
    if submission is None:
        raise SubmissionNotFoundError("Attempt not found")
    return submission


def require_submission_owner(submission: Submission, user_id: str) -> None:
    if submission.user_id != user_id:
        raise PermissionDeniedError("Not authorized to access this attempt")


def list_user_submissions(db: Session, user_id: str) -> List[Submission]:
    stmt = (
        select(Submission)
        .where(Submission.user_id == user_id)
        .options(selectinload(Submission.quiz), selectinload(Submission.vibe_result))
        .order_by(Submission.completed_at.desc())
    )
    return list(db.execute(stmt).scalars())


def delete_submission(db: Session, submission: Submission, user_id: str) -> None:
    """Delete an attempt with its answers and vibe result; only its owner may."""
    require_submission_owner(submission, user_id)
    db.delete(submission)
    _commit(db, "delete attempt")
    logger.info("Deleted submission %s", submission.id)


def save_vibe_result(db: Session, submission: Submission, analysis: VibeAnalysis) -> VibeResult:
    """Store the analysis for a submission and mark it analyzed.

    Returns the stored result, which is the earlier one when a concurrent
    request already saved an analysis for this submission.
    """
    result = VibeResult(
        quiz_id=submission.quiz_id,
        user_id=submission.user_id,
        vibe_analysis=analysis.vibe_analysis,
        vibe_categories=dict(analysis.vibe_categories),
        analyzed_by="ai",
    )
    submission.vibe_result = result
    submission.status = STATUS_ANALYZED
    try:
        db.commit()
    except IntegrityError as e:
        # Another request analyzed this submission first; its result wins
        db.rollback()
        stored = db.execute(
            select(VibeResult).where(VibeResult.submission_id == submission.id)
        ).scalar_one_or_none()
        if stored is None:
            logger.error("Failed to save vibe analysis, transaction rolled back: %s", e)
            raise PersistenceError("Failed to save vibe analysis", details=str(e)) from e
        logger.info("Submission %s was analyzed concurrently, keeping the stored result", submission.id)
        return stored
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to save vibe analysis, transaction rolled back: %s", e)
        raise PersistenceError("Failed to save vibe analysis", details=str(e)) from e
    return result


class AdminReader:
    """Elevated-privilege reads across every user's submissions.

    Only aggregate counts are exposed; nothing here returns rows.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def count_submissions(self, quiz_id: str) -> int:
        with self._session_factory() as db:
            stmt = select(func.count()).select_from(Submission).where(Submission.quiz_id == quiz_id)
            return db.execute(stmt).scalar_one()

    def count_submissions_for(self, quiz_ids: Iterable[str]) -> Dict[str, int]:
        quiz_ids = list(quiz_ids)
        counts = {quiz_id: 0 for quiz_id in quiz_ids}
        if not quiz_ids:
            return counts
        with self._session_factory() as db:
            stmt = (
                select(Submission.quiz_id, func.count())
                .where(Submission.quiz_id.in_(quiz_ids))
                .group_by(Submission.quiz_id)
            )
            for quiz_id, count in db.execute(stmt):
                counts[quiz_id] = count
        return counts
