"""Tests for quiz graph persistence, ownership and submission storage."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from error_handling import InvalidRequestError, PermissionDeniedError, PersistenceError, QuizNotFoundError
from models import Answer, Option, OptionInterpretation, Question, Quiz, Submission, VibeResult
from quiz_repository import (
    AdminReader,
    create_quiz_graph,
    delete_quiz,
    delete_submission,
    get_quiz,
    get_submission,
    list_user_quizzes,
    list_user_submissions,
    save_submission,
    save_vibe_result,
    update_quiz,
)
from schemas import OptionDraft, QuestionDraft, QuizDraft, UpdateOptionInput, UpdateQuestionInput, VibeAnalysis
from scoring import grade_submission


def scored_draft(num_questions=2):
    return QuizDraft(
        title="Planets Quiz",
        quiz_type="scored",
        questions=[
            QuestionDraft(
                question=f"Question {q}?",
                options=[OptionDraft(text=f"Q{q} option {o}", is_correct=o == 2) for o in range(1, 5)],
            )
            for q in range(1, num_questions + 1)
        ],
    )


def vibe_draft():
    return QuizDraft(
        title="Coffee Vibe Check",
        quiz_type="vibe",
        questions=[
            QuestionDraft(
                question="Pick a brew",
                options=[
                    OptionDraft(text=f"Brew {o}", vibe_category=f"cat{o}", vibe_value=f"val{o}")
                    for o in range(1, 5)
                ],
            )
        ],
    )


def count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def reload(db, quiz_id):
    db.expire_all()
    return get_quiz(db, quiz_id)


def test_scored_graph_round_trips_in_order(db) -> None:
    quiz = create_quiz_graph(db, scored_draft(3), owner_id="user-1", topic="Planets", difficulty="easy")
    fetched = reload(db, quiz.id)

    assert fetched.created_by == "user-1"
    assert fetched.quiz_type == "scored"
    assert [q.order_num for q in fetched.questions] == [1, 2, 3]
    assert [q.question for q in fetched.questions] == ["Question 1?", "Question 2?", "Question 3?"]
    for question in fetched.questions:
        assert [o.order_num for o in question.options] == [1, 2, 3, 4]
        assert [o.is_correct for o in question.options] == [False, True, False, False]
        assert all(not o.interpretations for o in question.options)


def test_vibe_graph_stores_interpretations_and_no_correctness(db) -> None:
    quiz = create_quiz_graph(db, vibe_draft(), owner_id="user-1")
    options = reload(db, quiz.id).questions[0].options

    assert all(o.is_correct is None for o in options)
    assert [(o.interpretations[0].vibe_category, o.interpretations[0].vibe_value) for o in options] == [
        ("cat1", "val1"),
        ("cat2", "val2"),
        ("cat3", "val3"),
        ("cat4", "val4"),
    ]


def test_failed_write_leaves_no_partial_quiz(db, monkeypatch) -> None:
    def broken_commit():
        raise OperationalError("INSERT INTO options", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(PersistenceError):
        create_quiz_graph(db, scored_draft(), owner_id="user-1")
    monkeypatch.undo()

    assert count(db, Quiz) == 0
    assert count(db, Question) == 0
    assert count(db, Option) == 0


def test_get_quiz_missing_raises_not_found(db) -> None:
    with pytest.raises(QuizNotFoundError):
        get_quiz(db, "no-such-quiz")


def test_list_user_quizzes_is_per_owner(db) -> None:
    create_quiz_graph(db, scored_draft(), owner_id="user-1")
    create_quiz_graph(db, vibe_draft(), owner_id="user-2")
    assert [q.created_by for q in list_user_quizzes(db, "user-1")] == ["user-1"]


def _as_update(quiz):
    return [
        UpdateQuestionInput(
            id=q.id,
            question=q.question,
            options=[UpdateOptionInput(id=o.id, option_text=o.option_text, is_correct=o.is_correct) for o in q.options],
        )
        for q in quiz.questions
    ]


def test_update_reorders_and_edits(db) -> None:
    quiz = create_quiz_graph(db, scored_draft(2), owner_id="user-1")
    first_id, second_id = quiz.questions[0].id, quiz.questions[1].id

    questions = list(reversed(_as_update(quiz)))
    questions[0].question = "Now first"
    questions[0].options[0].is_correct = True
    questions[0].options[1].is_correct = False
    questions.append(UpdateQuestionInput(
        question="Brand new",
        options=[UpdateOptionInput(option_text="yes", is_correct=True), UpdateOptionInput(option_text="no")],
    ))

    update_quiz(db, quiz, "user-1", title="Renamed", is_public=True, questions=questions)
    fetched = reload(db, quiz.id)

    assert fetched.title == "Renamed"
    assert fetched.is_public is True
    assert [q.id for q in fetched.questions[:2]] == [second_id, first_id]
    assert [q.question for q in fetched.questions] == ["Now first", "Question 1?", "Brand new"]
    assert [q.order_num for q in fetched.questions] == [1, 2, 3]
    assert [o.is_correct for o in fetched.questions[0].options] == [True, False, False, False]
    assert [o.option_text for o in fetched.questions[2].options] == ["yes", "no"]


def test_update_by_non_owner_is_denied(db) -> None:
    quiz = create_quiz_graph(db, scored_draft(), owner_id="user-1")
    with pytest.raises(PermissionDeniedError):
        update_quiz(db, quiz, "user-2", title="Hijacked")
    assert reload(db, quiz.id).title == "Planets Quiz"


def test_update_must_list_every_existing_question(db) -> None:
    quiz = create_quiz_graph(db, scored_draft(2), owner_id="user-1")
    with pytest.raises(InvalidRequestError):
        update_quiz(db, quiz, "user-1", questions=_as_update(quiz)[:1])


def test_update_rejects_two_correct_options(db) -> None:
    quiz = create_quiz_graph(db, scored_draft(1), owner_id="user-1")
    questions = _as_update(quiz)
    questions[0].options[0].is_correct = True
    with pytest.raises(InvalidRequestError):
        update_quiz(db, quiz, "user-1", questions=questions)


def test_update_vibe_tags(db) -> None:
    quiz = create_quiz_graph(db, vibe_draft(), owner_id="user-1")
    questions = _as_update(quiz)
    questions[0].options[0].vibe_category = "mood"
    questions[0].options[0].vibe_value = "bold"
    update_quiz(db, quiz, "user-1", questions=questions)

    first = reload(db, quiz.id).questions[0].options[0]
    assert first.is_correct is None
    assert (first.interpretations[0].vibe_category, first.interpretations[0].vibe_value) == ("mood", "bold")


def test_update_ignores_blank_vibe_tags(db) -> None:
    quiz = create_quiz_graph(db, vibe_draft(), owner_id="user-1")
    questions = _as_update(quiz)
    questions[0].options[0].vibe_category = "   "
    questions[0].options[1].vibe_category = "  "
    questions[0].options[1].vibe_value = "steady"
    questions[0].options.append(UpdateOptionInput(option_text="Brew 5", vibe_category="  ", vibe_value="  "))
    update_quiz(db, quiz, "user-1", questions=questions)

    options = reload(db, quiz.id).questions[0].options
    tags = [(o.interpretations[0].vibe_category, o.interpretations[0].vibe_value) for o in options]
    assert tags[0] == ("cat1", "val1")
    assert tags[1] == ("cat2", "steady")
    assert tags[4] == ("general", "neutral")


def test_concurrent_vibe_analysis_keeps_first_result(db, session_factory) -> None:
    quiz = create_quiz_graph(db, vibe_draft(), owner_id="user-1")
    submission = save_submission(db, quiz, "user-2", grade_submission(quiz, {}))
    loaded = get_submission(db, submission.id)
    assert loaded.vibe_result is None
    db.commit()

    with session_factory() as other:
        first = save_vibe_result(
            other, get_submission(other, submission.id), VibeAnalysis(vibe_analysis="First.", vibe_categories={})
        )
        first_id = first.id

    stored = save_vibe_result(db, loaded, VibeAnalysis(vibe_analysis="Second.", vibe_categories={}))
    assert stored.id == first_id
    assert stored.vibe_analysis == "First."
    assert count(db, VibeResult) == 1
    db.expire_all()
    assert get_submission(db, submission.id).status == "analyzed"


def test_delete_cascades_through_graph_and_submissions(db) -> None:
    quiz = create_quiz_graph(db, vibe_draft(), owner_id="user-1")
    question = quiz.questions[0]
    graded = grade_submission(quiz, {question.id: question.options[1].id})
    submission = save_submission(db, quiz, "user-2", graded)
    save_vibe_result(db, submission, VibeAnalysis(vibe_analysis="Calm.", vibe_categories={"mood": "calm"}))

    with pytest.raises(PermissionDeniedError):
        delete_quiz(db, quiz, "user-2")

    delete_quiz(db, quiz, "user-1")
    for model in (Quiz, Question, Option, OptionInterpretation, Submission, Answer, VibeResult):
        assert count(db, model) == 0


def test_submission_and_vibe_result_round_trip(db) -> None:
    quiz = create_quiz_graph(db, vibe_draft(), owner_id="user-1")
    question = quiz.questions[0]
    submission = save_submission(db, quiz, "user-2", grade_submission(quiz, {question.id: question.options[2].id}))
    assert submission.status == "submitted"

    save_vibe_result(db, submission, VibeAnalysis(vibe_analysis="Bold.", vibe_categories={"energy": "high"}))
    db.expire_all()
    stored = get_submission(db, submission.id)
    assert stored.status == "analyzed"
    assert stored.vibe_result.vibe_analysis == "Bold."
    assert stored.vibe_result.vibe_categories == {"energy": "high"}
    assert [a.selected_option_id for a in stored.answers] == [question.options[2].id]


def test_only_owner_may_delete_submission(db) -> None:
    quiz = create_quiz_graph(db, scored_draft(1), owner_id="user-1")
    submission = save_submission(db, quiz, "user-2", grade_submission(quiz, {}))

    with pytest.raises(PermissionDeniedError):
        delete_submission(db, submission, "user-1")
    delete_submission(db, submission, "user-2")
    assert list_user_submissions(db, "user-2") == []


def test_admin_reader_counts_across_users(db, session_factory) -> None:
    first = create_quiz_graph(db, scored_draft(1), owner_id="user-1")
    second = create_quiz_graph(db, scored_draft(1), owner_id="user-1")
    for user in ("user-2", "user-3"):
        save_submission(db, first, user, grade_submission(first, {}))

    reader = AdminReader(session_factory)
    assert reader.count_submissions(first.id) == 2
    assert reader.count_submissions(second.id) == 0
    assert reader.count_submissions_for([first.id, second.id]) == {first.id: 2, second.id: 0}
    assert reader.count_submissions_for([]) == {}
