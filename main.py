# Load environment variables FIRST before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
import time
from typing import Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from auth import get_current_user, get_optional_user
from config import get_settings, print_settings
from database import AdminSessionLocal, get_db, init_db
from error_handling import (
    ConfigurationError,
    GenerationError,
    InvalidRequestError,
    PermissionDeniedError,
    VibeAnalysisError,
    VibeCheckError,
)
from generation_client import GenerationClient, get_generation_client
from logger import performance_monitor, request_logger
from models import Quiz, Submission, VibeResult
from quiz_engine import generate_quiz
from quiz_parser import Err, validate_authored_quiz
from quiz_repository import (
    AdminReader,
    create_quiz_graph,
    delete_quiz,
    delete_submission,
    get_quiz,
    get_submission,
    list_user_quizzes,
    list_user_submissions,
    require_submission_owner,
    save_submission,
    save_vibe_result,
    update_quiz,
)
from schemas import (
    AnalyzeVibeRequest,
    AnalyzeVibeResponse,
    AttemptIdRequest,
    CreateQuizRequest,
    CreateQuizResponse,
    GenerateQuizRequest,
    GenerateQuizResponse,
    QuizDraft,
    QuizIdRequest,
    SubmitQuizRequest,
    SubmitQuizResponse,
    UpdateQuizRequest,
    VibeAnalysis,
)
from scoring import analyze_vibe, grade_submission

logger = logging.getLogger("vibecheck.api")
settings = get_settings()

# --- App Initialization ---
app = FastAPI(
    title="Vibe Check API",
    description="Create, share and take scored quizzes and vibe checks, with AI-assisted generation.",
    version=settings.app_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_admin_reader() -> AdminReader:
    """Elevated-privilege reader used only for aggregate submission counts."""
    return AdminReader(AdminSessionLocal)


# --- Middleware & error handlers ---

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    user_id = request.headers.get(settings.identity_header)
    request_logger.log_request(request.url.path, request.method, user_id=user_id)
    try:
        response = await call_next(request)
    except Exception:
        # Unhandled errors are rendered as 500 outside this middleware
        request_logger.log_response(request.url.path, 500, (time.time() - start_time) * 1000, user_id=user_id)
        raise
    request_logger.log_response(
        request.url.path, response.status_code, (time.time() - start_time) * 1000, user_id=user_id
    )
    return response


@app.exception_handler(VibeCheckError)
async def handle_service_error(request: Request, exc: VibeCheckError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    body = {"error": exc.message}
    if exc.details is not None:
        body["details"] = jsonable_encoder(exc.details)
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    missing = any(e.get("type") == "missing" for e in errors)
    message = "Missing required fields" if missing else "Invalid request data"
    logger.warning("%s %s -> 400: %s", request.method, request.url.path, message)
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]
    return JSONResponse(status_code=400, content={"error": message, "details": jsonable_encoder(details)})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@app.on_event("startup")
async def startup_event():
    """Create tables and report configuration"""
    init_db()
    logger.info(
        "Server is ready to accept requests (provider=%s, model=%s)",
        settings.generation_provider, settings.generation_model,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Flush collected timing metrics to the log"""
    performance_monitor.log_stats()


# --- Serializers ---

def serialize_quiz(quiz: Quiz, include_answers: bool, submission_count: int = 0) -> Dict:
    """Quiz graph in display order; correctness and vibe tags only for the owner."""
    questions = []
    for question in sorted(quiz.questions, key=lambda q: q.order_num):
        options = []
        for option in sorted(question.options, key=lambda o: o.order_num):
            item = {"id": option.id, "option_text": option.option_text, "order_num": option.order_num}
            if include_answers:
                item["is_correct"] = option.is_correct
                if option.interpretations:
                    item["vibe_category"] = option.interpretations[0].vibe_category
                    item["vibe_value"] = option.interpretations[0].vibe_value
            options.append(item)
        questions.append({
            "id": question.id,
            "question": question.question,
            "order_num": question.order_num,
            "options": options,
        })

    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "topic": quiz.topic,
        "difficulty": quiz.difficulty,
        "is_public": quiz.is_public,
        "created_by": quiz.created_by,
        "quiz_type": quiz.quiz_type,
        "created_at": quiz.created_at.isoformat() if quiz.created_at else None,
        "submission_count": submission_count,
        "questions": questions,
    }


def serialize_submission(submission: Submission) -> Dict:
    data = {
        "id": submission.id,
        "quiz_id": submission.quiz_id,
        "quiz_title": submission.quiz.title if submission.quiz else None,
        "quiz_type": submission.quiz.quiz_type if submission.quiz else None,
        "score": submission.score,
        "max_score": submission.max_score,
        "status": submission.status,
        "completed_at": submission.completed_at.isoformat() if submission.completed_at else None,
    }
    if submission.vibe_result is not None:
        data["vibe_analysis"] = submission.vibe_result.vibe_analysis
        data["vibe_categories"] = submission.vibe_result.vibe_categories
    return data


# --- API Endpoints ---

@app.get("/health", status_code=200)
async def health_check(client: GenerationClient = Depends(get_generation_client)):
    """A simple endpoint to confirm the API is running correctly."""
    return {
        "status": "ok",
        "generation": client.get_state(),
        "requests": request_logger.get_stats(),
        "metrics": performance_monitor.all_stats(),
    }


@app.post("/api/quiz/generate", response_model=GenerateQuizResponse)
def generate_quiz_endpoint(
    request: GenerateQuizRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: GenerationClient = Depends(get_generation_client),
):
    """Generate a quiz from a topic with the model and persist it."""
    if request.num_questions not in settings.allowed_question_counts:
        allowed = ", ".join(str(n) for n in settings.allowed_question_counts)
        raise InvalidRequestError(f"numQuestions must be one of {allowed}")

    draft = generate_quiz(client, request.topic, request.num_questions, request.difficulty, request.quiz_type)

    kind_label = "vibe check " if draft.quiz_type == "vibe" else ""
    custom_title = request.title.strip() if request.title and request.title.strip() else None
    quiz = create_quiz_graph(
        db,
        draft,
        owner_id=user_id,
        description=f"A {request.difficulty} difficulty {kind_label}quiz about {request.topic}",
        is_public=request.visibility == "public",
        topic=request.topic,
        difficulty=request.difficulty,
        title=custom_title,
    )
    return GenerateQuizResponse(
        quiz_id=quiz.id,
        title=quiz.title,
        questions_inserted=len(quiz.questions),
        quiz_type=quiz.quiz_type,
    )


@app.post("/api/quiz/create", response_model=CreateQuizResponse)
def create_quiz_endpoint(
    request: CreateQuizRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a quiz by hand, optionally with its questions."""
    result = validate_authored_quiz(
        QuizDraft(title=request.title, quiz_type=request.quiz_type, questions=request.questions)
    )
    if isinstance(result, Err):
        raise InvalidRequestError(result.reason)

    quiz = create_quiz_graph(
        db,
        result.value,
        owner_id=user_id,
        description=request.description or f"A quiz about {request.title}",
        is_public=request.visibility == "public",
    )
    return CreateQuizResponse(quiz_id=quiz.id, questions_inserted=len(quiz.questions))


@app.post("/api/quiz/fetch")
def fetch_quiz_endpoint(
    request: QuizIdRequest,
    user_id: Optional[str] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    admin: AdminReader = Depends(get_admin_reader),
):
    """Fetch a quiz by id; anyone with the link may take it."""
    quiz = get_quiz(db, request.quiz_id)
    is_owner = user_id is not None and quiz.created_by == user_id
    return {
        "success": True,
        "quiz": serialize_quiz(quiz, include_answers=is_owner, submission_count=admin.count_submissions(quiz.id)),
    }


@app.post("/api/quiz/update")
def update_quiz_endpoint(
    request: UpdateQuizRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit a quiz's details, questions and options (owner only)."""
    quiz = get_quiz(db, request.quiz_id)
    is_public = None if request.visibility is None else request.visibility == "public"
    quiz = update_quiz(
        db,
        quiz,
        user_id,
        title=request.title,
        description=request.description,
        is_public=is_public,
        questions=request.questions,
    )
    return {"success": True, "quiz": serialize_quiz(quiz, include_answers=True), "message": "Quiz updated successfully"}


@app.post("/api/quiz/delete")
def delete_quiz_endpoint(
    request: QuizIdRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quiz = get_quiz(db, request.quiz_id)
    delete_quiz(db, quiz, user_id)
    return {"success": True, "message": "Quiz deleted successfully"}


@app.post("/api/quiz/user-quizzes")
def user_quizzes_endpoint(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    admin: AdminReader = Depends(get_admin_reader),
):
    """List the caller's quizzes with their submission counts."""
    quizzes = list_user_quizzes(db, user_id)
    counts = admin.count_submissions_for(q.id for q in quizzes)
    return {
        "success": True,
        "quizzes": [
            {
                "id": q.id,
                "title": q.title,
                "description": q.description,
                "quiz_type": q.quiz_type,
                "is_public": q.is_public,
                "created_at": q.created_at.isoformat() if q.created_at else None,
                "submission_count": counts.get(q.id, 0),
            }
            for q in quizzes
        ],
    }


@app.post("/api/quiz/submission-count")
def submission_count_endpoint(
    request: QuizIdRequest,
    admin: AdminReader = Depends(get_admin_reader),
):
    return {"success": True, "submission_count": admin.count_submissions(request.quiz_id)}


@app.post("/api/quiz/submit", response_model=SubmitQuizResponse)
def submit_quiz_endpoint(
    request: SubmitQuizRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record and grade a learner's answers."""
    if request.user_id is not None and request.user_id != user_id:
        raise PermissionDeniedError("User ID mismatch")

    quiz = get_quiz(db, request.quiz_id)
    graded = grade_submission(quiz, request.answers)
    submission = save_submission(db, quiz, user_id, graded)
    return SubmitQuizResponse(
        submission_id=submission.id,
        quiz_type=quiz.quiz_type,
        status=submission.status,
        score=submission.score,
        max_score=submission.max_score,
        answers_inserted=len(graded.answers),
    )


def _analysis_response(submission_id: str, stored: VibeResult) -> AnalyzeVibeResponse:
    return AnalyzeVibeResponse(
        submission_id=submission_id,
        vibe_analysis=VibeAnalysis(vibe_analysis=stored.vibe_analysis, vibe_categories=stored.vibe_categories or {}),
    )


@app.post("/api/quiz/analyze-vibe", response_model=AnalyzeVibeResponse)
def analyze_vibe_endpoint(
    request: AnalyzeVibeRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: GenerationClient = Depends(get_generation_client),
):
    """
    Generate the vibe analysis for a submission.

    The submission is already recorded; if the model cannot be reached the
    caller gets an analysis failure that names the submission.
    """
    submission = get_submission(db, request.submission_id)
    require_submission_owner(submission, user_id)
    if request.quiz_id and request.quiz_id != submission.quiz_id:
        raise InvalidRequestError("Submission does not belong to this quiz")

    quiz = get_quiz(db, submission.quiz_id)
    if quiz.quiz_type != "vibe":
        raise InvalidRequestError("This is not a vibe check quiz")

    if submission.vibe_result is not None:
        return _analysis_response(submission.id, submission.vibe_result)

    try:
        analysis = analyze_vibe(quiz, submission, client)
    except (GenerationError, ConfigurationError) as e:
        logger.error("Vibe analysis failed for submission %s: %s", submission.id, e.message)
        raise VibeAnalysisError(
            "Failed to generate vibe analysis",
            details={"submissionId": submission.id, "reason": e.message},
        ) from e

    stored = save_vibe_result(db, submission, analysis)
    return _analysis_response(submission.id, stored)


@app.post("/api/quiz/get-attempts")
def get_attempts_endpoint(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's attempts, newest first."""
    return {
        "success": True,
        "attempts": [serialize_submission(s) for s in list_user_submissions(db, user_id)],
    }


@app.post("/api/quiz/get-attempt-answers")
def get_attempt_answers_endpoint(
    request: AttemptIdRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    submission = get_submission(db, request.attempt_id)
    require_submission_owner(submission, user_id)
    quiz = get_quiz(db, submission.quiz_id)

    questions = {q.id: q for q in quiz.questions}
    answers: List[Dict] = []
    for answer in submission.answers:
        question = questions.get(answer.question_id)
        if question is None:
            continue
        selected = next((o for o in question.options if o.id == answer.selected_option_id), None)
        correct = next((o for o in question.options if o.is_correct), None)
        answers.append({
            "question_id": question.id,
            "question": question.question,
            "order_num": question.order_num,
            "selected_option_id": answer.selected_option_id,
            "selected_option_text": selected.option_text if selected else None,
            "is_correct": answer.is_correct,
            "correct_option_text": correct.option_text if correct and quiz.quiz_type == "scored" else None,
        })
    answers.sort(key=lambda a: a["order_num"])
    return {"success": True, "attempt": serialize_submission(submission), "answers": answers}


@app.post("/api/quiz/delete-attempt")
def delete_attempt_endpoint(
    request: AttemptIdRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    submission = get_submission(db, request.attempt_id)
    delete_submission(db, submission, user_id)
    return {"success": True, "message": "Attempt deleted successfully"}


if __name__ == "__main__":
    print_settings()
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        timeout_keep_alive=300,
    )
