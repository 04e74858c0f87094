"""SQLAlchemy models for quizzes and submissions.

Quiz -> Question -> Option -> OptionInterpretation is the quiz graph, written
as one unit. Submission -> Answer / VibeResult records one attempt. Deleting
a quiz cascades through both.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Quiz(Base):
    """A quiz owned by the user who created it.

    ``quiz_type`` and ``created_by`` are set once at creation.
    """

    __tablename__ = "quizzes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    topic: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    difficulty: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[str] = mapped_column(String(128), index=True)
    quiz_type: Mapped[str] = mapped_column(String(16), default="scored")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    questions: Mapped[List["Question"]] = relationship(
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="Question.order_num",
    )
    submissions: Mapped[List["Submission"]] = relationship(
        back_populates="quiz",
        cascade="all, delete-orphan",
    )


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (UniqueConstraint("quiz_id", "order_num", name="uq_question_order"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    quiz_id: Mapped[str] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), index=True)
    question: Mapped[str] = mapped_column(Text)
    order_num: Mapped[int] = mapped_column(Integer)

    quiz: Mapped[Quiz] = relationship(back_populates="questions")
    options: Mapped[List["Option"]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="Option.order_num",
    )


class Option(Base):
    """An answer option. ``is_correct`` is NULL for vibe quizzes."""

    __tablename__ = "options"
    __table_args__ = (UniqueConstraint("question_id", "order_num", name="uq_option_order"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    question_id: Mapped[str] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), index=True)
    option_text: Mapped[str] = mapped_column(Text)
    is_correct: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    order_num: Mapped[int] = mapped_column(Integer)

    question: Mapped[Question] = relationship(back_populates="options")
    interpretations: Mapped[List["OptionInterpretation"]] = relationship(
        back_populates="option",
        cascade="all, delete-orphan",
    )


class OptionInterpretation(Base):
    __tablename__ = "option_interpretations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    option_id: Mapped[str] = mapped_column(ForeignKey("options.id", ondelete="CASCADE"), index=True)
    vibe_category: Mapped[str] = mapped_column(String(100))
    vibe_value: Mapped[str] = mapped_column(String(100))

    option: Mapped[Option] = relationship(back_populates="interpretations")


class Submission(Base):
    """One learner attempt at a quiz.

    status: ``scored`` for scored quizzes, ``submitted`` then ``analyzed`` for
    vibe quizzes.
    """

    __tablename__ = "quiz_submissions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    quiz_id: Mapped[str] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    score: Mapped[int] = mapped_column(Integer, default=0)
    max_score: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="submitted")
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    quiz: Mapped[Quiz] = relationship(back_populates="submissions")
    answers: Mapped[List["Answer"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
    )
    vibe_result: Mapped[Optional["VibeResult"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
        uselist=False,
    )


class Answer(Base):
    """A selected option; ``is_correct`` is copied at submission time."""

    __tablename__ = "user_answers"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    submission_id: Mapped[str] = mapped_column(ForeignKey("quiz_submissions.id", ondelete="CASCADE"), index=True)
    question_id: Mapped[str] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"))
    selected_option_id: Mapped[str] = mapped_column(ForeignKey("options.id", ondelete="CASCADE"))
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)

    submission: Mapped[Submission] = relationship(back_populates="answers")
    question: Mapped[Question] = relationship()
    selected_option: Mapped[Option] = relationship()


class VibeResult(Base):
    __tablename__ = "vibe_results"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("quiz_submissions.id", ondelete="CASCADE"), unique=True
    )
    quiz_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(128))
    vibe_analysis: Mapped[str] = mapped_column(Text)
    vibe_categories: Mapped[dict] = mapped_column(JSON, default=dict)
    analyzed_by: Mapped[str] = mapped_column(String(32), default="ai")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    submission: Mapped[Submission] = relationship(back_populates="vibe_result")
