"""
Pydantic models for quiz drafts and the HTTP request/response bodies.

Request bodies keep the camelCase field names the web client sends
(``quizId``, ``numQuestions``, ...); Python code uses the snake_case names.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

QuizKind = Literal["scored", "vibe"]
Difficulty = Literal["easy", "medium", "hard"]
Visibility = Literal["public", "private"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Quiz drafts (validated, not yet persisted) ---

class OptionDraft(_CamelModel):
    text: str
    is_correct: Optional[bool] = Field(default=None, alias="isCorrect")
    vibe_category: Optional[str] = Field(default=None, alias="vibeCategory")
    vibe_value: Optional[str] = Field(default=None, alias="vibeValue")


class QuestionDraft(_CamelModel):
    question: str
    options: List[OptionDraft]


class QuizDraft(_CamelModel):
    """A structurally valid quiz graph ready for the persistence writer."""
    title: str
    quiz_type: QuizKind = Field(alias="quizType")
    questions: List[QuestionDraft]


class VibeAnalysis(_CamelModel):
    vibe_analysis: str = Field(alias="vibeAnalysis")
    vibe_categories: Dict[str, str] = Field(default_factory=dict, alias="vibeCategories")


# --- Requests ---

class GenerateQuizRequest(_CamelModel):
    topic: str
    num_questions: int = Field(alias="numQuestions")
    difficulty: Difficulty
    visibility: Visibility
    title: Optional[str] = None
    quiz_type: QuizKind = Field(default="scored", alias="quizType")

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("topic must not be empty")
        return value


class CreateQuizRequest(_CamelModel):
    title: str
    description: Optional[str] = None
    visibility: Visibility = "private"
    quiz_type: QuizKind = Field(default="scored", alias="quizType")
    questions: List[QuestionDraft] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Quiz title is required")
        return value


class QuizIdRequest(_CamelModel):
    quiz_id: str = Field(alias="quizId")


class UpdateOptionInput(BaseModel):
    id: Optional[str] = None
    option_text: str
    is_correct: Optional[bool] = None
    vibe_category: Optional[str] = None
    vibe_value: Optional[str] = None


class UpdateQuestionInput(BaseModel):
    id: Optional[str] = None
    question: str
    options: List[UpdateOptionInput]


class UpdateQuizRequest(_CamelModel):
    quiz_id: str = Field(alias="quizId")
    title: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[Visibility] = None
    questions: Optional[List[UpdateQuestionInput]] = None


class SubmitQuizRequest(_CamelModel):
    quiz_id: str = Field(alias="quizId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    # question id -> selected option id
    answers: Dict[str, str]


class AnalyzeVibeRequest(_CamelModel):
    submission_id: str = Field(alias="submissionId")
    quiz_id: Optional[str] = Field(default=None, alias="quizId")


class AttemptIdRequest(_CamelModel):
    attempt_id: str = Field(alias="attemptId")


# --- Responses ---

class GenerateQuizResponse(_CamelModel):
    success: bool = True
    quiz_id: str = Field(alias="quizId")
    title: str
    questions_inserted: int = Field(alias="questionsInserted")
    quiz_type: QuizKind = Field(alias="quizType")
    message: str = "Quiz generated successfully"


class CreateQuizResponse(_CamelModel):
    success: bool = True
    quiz_id: str = Field(alias="quizId")
    questions_inserted: int = Field(alias="questionsInserted")
    message: str = "Quiz created successfully"


class SubmitQuizResponse(_CamelModel):
    success: bool = True
    submission_id: str = Field(alias="submissionId")
    quiz_type: QuizKind = Field(alias="quizType")
    status: str
    score: int
    max_score: int = Field(alias="maxScore")
    answers_inserted: int = Field(alias="answersInserted")


class AnalyzeVibeResponse(_CamelModel):
    success: bool = True
    submission_id: str = Field(alias="submissionId")
    vibe_analysis: VibeAnalysis = Field(alias="vibeAnalysis")
