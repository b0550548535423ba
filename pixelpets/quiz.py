"""
Quiz questions for task completion
──────────────────────────────────
• `HttpQuestionGenerator` asks a remote endpoint for one trivia payload
• any failure there is a GenerationFailure; `question_for_task` then
  serves a question from the bundled bank instead
Rewards never depend on where the question came from.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field, model_validator

from .errors import GenerationFailure

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "FBLA business concepts"
LOCAL_SOURCE = "Premade List"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Question(BaseModel):
    type: str = "trivia"
    question: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2)
    answer: int = Field(..., ge=0)
    explanation: str = ""
    category: str = ""
    generated_by: str = "AI"

    @model_validator(mode="after")
    def _answer_in_range(self) -> "Question":
        if self.answer >= len(self.options):
            raise ValueError("answer index outside options")
        return self

    def is_correct(self, choice: int) -> bool:
        return choice == self.answer


LOCAL_QUESTIONS: List[Question] = [
    Question(
        question="What does FBLA stand for?",
        options=[
            "Future Business Leaders of America",
            "Federal Business Loan Association",
            "Financial Business Learning Academy",
            "First Business League Award",
        ],
        answer=0,
        explanation="FBLA prepares students for careers in business.",
        category="FBLA Basics",
    ),
    Question(
        question="What is the FBLA motto?",
        options=[
            "Success Through Leadership",
            "Service, Education, and Progress",
            "Business First, Always",
            "Learn, Lead, Succeed",
        ],
        answer=1,
        explanation="'Service, Education, and Progress' guides all members.",
        category="FBLA Basics",
    ),
    Question(
        question="What does an entrepreneur do?",
        options=[
            "Works for the government",
            "Starts and runs their own business",
            "Only invests in stocks",
            "Teaches business classes",
        ],
        answer=1,
        explanation="Entrepreneurs take risks to start and run their own businesses.",
        category="Business Basics",
    ),
    Question(
        question="What is 'supply and demand'?",
        options=[
            "A store policy",
            "Economic principle determining price and quantity",
            "Making demands provided by a supplier",
            "None of the above",
        ],
        answer=1,
        explanation="Supply and demand explains how markets determine prices.",
        category="Economics",
    ),
    Question(
        question="What is a budget?",
        options=[
            "A list of things you already bought",
            "A plan for how to spend and save money",
            "A type of bank account",
            "A loan from a friend",
        ],
        answer=1,
        explanation="A budget plans income against spending and saving.",
        category="Personal Finance",
    ),
    Question(
        question="Which of these is a need rather than a want?",
        options=["Designer sneakers", "Groceries", "A new game console", "Concert tickets"],
        answer=1,
        explanation="Needs are essentials like food and shelter.",
        category="Personal Finance",
    ),
    Question(
        question="What does 'CEO' stand for?",
        options=[
            "Chief Executive Officer",
            "Company Employee Organizer",
            "Central Economic Office",
            "Chief Energy Operator",
        ],
        answer=0,
        explanation="The CEO is the highest-ranking executive.",
        category="Business Roles",
    ),
    Question(
        question="In parliamentary procedure, what motion immediately ends debate?",
        options=["Adjourn", "Point of Order", "Previous Question", "Recess"],
        answer=2,
        explanation="Moving the 'Previous Question' calls for an immediate vote.",
        category="Parliamentary Procedure",
    ),
]


def shuffled(question: Question, rng: Optional[random.Random] = None) -> Question:
    """Shuffle options and remap the answer index."""
    rng = rng or random
    correct = question.options[question.answer]
    options = list(question.options)
    rng.shuffle(options)
    return question.model_copy(update={"options": options, "answer": options.index(correct)})


class QuestionGenerator(ABC):
    @abstractmethod
    async def generate(self, topic: str, difficulty: Difficulty) -> Question:
        """Return one question or raise GenerationFailure."""


class LocalQuestionBank(QuestionGenerator):
    def __init__(self, questions: Optional[List[Question]] = None, rng: Optional[random.Random] = None):
        self.questions = questions or LOCAL_QUESTIONS
        self.rng = rng or random.Random()

    async def generate(self, topic: str = DEFAULT_TOPIC, difficulty: Difficulty = Difficulty.MEDIUM) -> Question:
        picked = self.rng.choice(self.questions)
        return picked.model_copy(update={"generated_by": LOCAL_SOURCE})


class HttpQuestionGenerator(QuestionGenerator):
    """POSTs {type, category, difficulty} to `endpoint`, expects one trivia JSON."""

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def generate(self, topic: str = DEFAULT_TOPIC, difficulty: Difficulty = Difficulty.MEDIUM) -> Question:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        body = {"type": "trivia", "category": topic, "difficulty": Difficulty(difficulty).value}
        try:
            res = await self.client.post(self.endpoint, json=body, headers=headers)
            res.raise_for_status()
            return Question.model_validate(res.json())
        except (httpx.HTTPError, ValueError) as exc:  # bad JSON or bad shape
            raise GenerationFailure(str(exc)) from exc

    async def aclose(self) -> None:
        await self.client.aclose()


async def question_for_task(
    generator: Optional[QuestionGenerator],
    *,
    topic: str = DEFAULT_TOPIC,
    difficulty: Difficulty = Difficulty.MEDIUM,
    fallback: Optional[QuestionGenerator] = None,
    rng: Optional[random.Random] = None,
) -> Question:
    fallback = fallback or LocalQuestionBank(rng=rng)
    question = None
    if generator is not None:
        try:
            question = await generator.generate(topic, difficulty)
        except GenerationFailure as exc:
            logger.warning("question generator failed, using local bank: %s", exc)
    if question is None:
        question = await fallback.generate(topic, difficulty)
    return shuffled(question, rng)
