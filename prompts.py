"""
Prompt templates for quiz generation and vibe analysis.
"""
import json
from typing import Iterable

DIFFICULTIES = ("easy", "medium", "hard")
QUIZ_KINDS = ("scored", "vibe")

OPTIONS_PER_QUESTION = 4

_SCORED_EXAMPLE = {
    "title": "{topic} Quiz",
    "questions": [
        {
            "question": "What is the capital of France?",
            "options": [
                {"text": "Berlin", "isCorrect": False},
                {"text": "Madrid", "isCorrect": False},
                {"text": "Paris", "isCorrect": True},
                {"text": "Rome", "isCorrect": False},
            ],
        }
    ],
    "quizType": "scored",
}

_VIBE_EXAMPLE = {
    "title": "{topic} Vibe Check",
    "questions": [
        {
            "question": "Which {topic} element resonates with you most?",
            "options": [
                {"text": "Option description here", "vibeCategory": "enthusiasm", "vibeValue": "passionate"},
                {"text": "Option description here", "vibeCategory": "approach", "vibeValue": "analytical"},
                {"text": "Option description here", "vibeCategory": "style", "vibeValue": "nostalgic"},
                {"text": "Option description here", "vibeCategory": "interest", "vibeValue": "casual"},
            ],
        }
    ],
    "quizType": "vibe",
}

_JSON_ONLY = "DO NOT include any text before or after the JSON. Return ONLY the JSON."


def _example_json(example: dict, topic: str) -> str:
    return json.dumps(example, indent=2).replace("{topic}", topic)


def build_quiz_prompt(topic: str, num_questions: int, difficulty: str, quiz_type: str = "scored") -> str:
    """
    Build the instruction sent to the model for a new quiz.

    The model is told to answer with nothing but a JSON document whose shape
    depends on the quiz kind: scored options carry ``isCorrect`` (exactly one
    true per question), vibe options carry ``vibeCategory``/``vibeValue``.
    """
    topic = (topic or "").strip()
    if not topic:
        raise ValueError("topic must not be empty")
    if num_questions < 1:
        raise ValueError("num_questions must be a positive integer")
    if difficulty not in DIFFICULTIES:
        raise ValueError(f"difficulty must be one of {', '.join(DIFFICULTIES)}")
    if quiz_type not in QUIZ_KINDS:
        raise ValueError(f"quiz_type must be one of {', '.join(QUIZ_KINDS)}")

    if quiz_type == "scored":
        return f"""
Create a multiple choice quiz about {topic} with exactly {num_questions} questions.
Difficulty level: {difficulty}.

Each question must have EXACTLY {OPTIONS_PER_QUESTION} options, with only ONE correct answer.

Format your response as VALID JSON following this structure exactly:
{_example_json(_SCORED_EXAMPLE, topic)}

{_JSON_ONLY}
""".strip()

    return f"""
Create a "vibe check" opinion quiz about {topic} with exactly {num_questions} questions.
The quiz should assess the user's personality, preferences, or opinions about {topic}.
Difficulty level: {difficulty}.

Each question must have EXACTLY {OPTIONS_PER_QUESTION} options, with NO correct answers.
Instead, each option should reveal something about the user's personality or vibe.

For each option, include:
- "vibeCategory": A category this option relates to (e.g., "enthusiasm", "knowledge", "humor style")
- "vibeValue": The specific value within that category (e.g., "high", "nostalgic", "ironic")

Format your response as VALID JSON following this structure exactly:
{_example_json(_VIBE_EXAMPLE, topic)}

{_JSON_ONLY}
""".strip()


def build_vibe_analysis_prompt(topic: str, selections: Iterable) -> str:
    """Build the personality-analysis prompt from a learner's vibe selections."""
    lines = "\n".join(
        f'- Question: "{s.question}" | Answer: "{s.answer}" | Category: {s.category} | Value: {s.value}'
        for s in selections
    )
    return f"""
Analyze the following quiz responses about "{topic}" and generate a fun, insightful "vibe check" analysis.

User's answers:
{lines}

Based on these answers, create a personality analysis about the user's relationship with {topic}.
Make it fun, insightful, and between 100-200 words.

Also categorize the user's overall vibe into relevant categories.

Format your response as VALID JSON following this structure:
{{
  "vibeAnalysis": "A fun, creative analysis of the person's relationship with {topic}...",
  "vibeCategories": {{
    "enthusiasm": "high",
    "knowledge": "expert",
    "approach": "nostalgic"
  }}
}}

{_JSON_ONLY}
""".strip()


def topic_from_title(title: str) -> str:
    """Recover the topic of a quiz stored without one from its title."""
    for suffix in (" Vibe Check", " Quiz"):
        if title.endswith(suffix):
            return title[: -len(suffix)].strip() or title
    return title
