import re
import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

import requests

import config
from errors import UnknownQuestion, UnknownQuestionSet

logger = logging.getLogger(__name__)

QuestionId = Union[int, str]

MAX_SET_TITLE_LENGTH = 200
MAX_QUESTION_TEXT_LENGTH = 2000
MAX_CHOICE_LENGTH = 500


@dataclass(frozen=True)
class Question:
    id: QuestionId
    text: str
    answer_choices: Tuple[str, ...]
    correct_answer: str

    def is_correct(self, answer: str) -> bool:
        return answer == self.correct_answer

    def to_public_dict(self) -> dict:
        """Client payload: everything except the correct answer."""
        return {"id": self.id, "text": self.text, "answers": list(self.answer_choices)}


@dataclass(frozen=True)
class QuestionSet:
    id: str
    title: str
    questions: Tuple[Question, ...]

    def get(self, question_id: QuestionId) -> Optional[Question]:
        key = str(question_id)
        for question in self.questions:
            if str(question.id) == key:
                return question
        return None

    def __len__(self) -> int:
        return len(self.questions)


DEFAULT_SETS = [
    {
        "id": "4h8z3k",
        "title": "General Knowledge",
        "questions": [
            {"id": 1, "text": "What is the capital of France?",
             "answers": ["Berlin", "Paris", "Madrid", "Rome"], "correct": "Paris"},
            {"id": 2, "text": "What is 7 multiplied by 8?",
             "answers": ["49", "56", "64", "72"], "correct": "56"},
            {"id": 3, "text": "Which is a primary color?",
             "answers": ["Green", "Orange", "Blue", "Purple"], "correct": "Blue"},
            {"id": 4, "text": "Gimkit was created by whom?",
             "answers": ["Josh Feinsilber", "Elon Musk", "Bill Gates", "Mark Zuckerberg"],
             "correct": "Josh Feinsilber"},
        ],
    },
]


def _sanitize_text(text: str) -> str:
    """Strip HTML tags and control characters from imported text."""
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    return text.strip()


def _validate_set(set_data: dict) -> bool:
    if not isinstance(set_data, dict):
        logger.warning("Question set is not an object: %s", type(set_data).__name__)
        return False
    if not isinstance(set_data.get("id"), str) or not set_data["id"].strip():
        logger.warning("Question set missing 'id'")
        return False
    questions = set_data.get("questions")
    if not isinstance(questions, list):
        logger.warning("Question set %s has no 'questions' list", set_data["id"])
        return False

    seen = set()
    for q in questions:
        if not isinstance(q, dict) or not all(k in q for k in ("id", "text", "answers", "correct")):
            logger.warning("Question set %s: question missing required fields: %s", set_data["id"], q)
            return False
        if isinstance(q["id"], bool) or not isinstance(q["id"], (int, str)):
            logger.warning("Question set %s: question id must be a string or integer: %r",
                           set_data["id"], q["id"])
            return False
        answers = q["answers"]
        if not isinstance(answers, list) or len(answers) != config.ANSWER_CHOICES_PER_QUESTION:
            logger.warning("Question set %s: question %s must have %d answers",
                           set_data["id"], q["id"], config.ANSWER_CHOICES_PER_QUESTION)
            return False
        if q["correct"] not in answers:
            logger.warning("Question set %s: question %s correct answer not among choices",
                           set_data["id"], q["id"])
            return False
        if str(q["id"]) in seen:
            logger.warning("Question set %s: duplicate question id %s", set_data["id"], q["id"])
            return False
        seen.add(str(q["id"]))
    return True


def _build_set(set_data: dict) -> QuestionSet:
    questions = tuple(
        Question(
            id=q["id"],
            text=_sanitize_text(str(q["text"]))[:MAX_QUESTION_TEXT_LENGTH],
            answer_choices=tuple(_sanitize_text(str(a))[:MAX_CHOICE_LENGTH] for a in q["answers"]),
            correct_answer=_sanitize_text(str(q["correct"]))[:MAX_CHOICE_LENGTH],
        )
        for q in set_data["questions"]
    )
    title = _sanitize_text(str(set_data.get("title") or set_data["id"]))[:MAX_SET_TITLE_LENGTH]
    return QuestionSet(id=set_data["id"].strip(), title=title, questions=questions)


class QuestionCatalog:
    """Read-only lookup of question sets by set id and question id."""

    def __init__(self, sets: Optional[Iterable[dict]] = None):
        self._sets: Dict[str, QuestionSet] = {}
        for set_data in sets or ():
            self.add_set(set_data)

    def add_set(self, set_data: dict) -> bool:
        if not _validate_set(set_data):
            return False
        question_set = _build_set(set_data)
        if question_set.id in self._sets:
            logger.info("Replacing question set %s", question_set.id)
        self._sets[question_set.id] = question_set
        return True

    def get_set(self, set_id: str) -> QuestionSet:
        question_set = self._sets.get(set_id)
        if question_set is None:
            raise UnknownQuestionSet(f"Question set '{set_id}' not found")
        return question_set

    def get_question(self, set_id: str, question_id: QuestionId) -> Question:
        question = self.get_set(set_id).get(question_id)
        if question is None:
            raise UnknownQuestion(f"Question {question_id} not in set '{set_id}'")
        return question

    def set_ids(self) -> List[str]:
        return list(self._sets)

    def describe(self) -> List[dict]:
        return [
            {"id": s.id, "title": s.title, "question_count": len(s)}
            for s in self._sets.values()
        ]

    def load_file(self, path: str) -> int:
        with open(path, encoding="utf-8") as fh:
            payload = json.load(fh)
        return self._load_payload(payload, source=path)

    def load_url(self, url: str) -> int:
        response = requests.get(url, timeout=config.QUESTION_SETS_TIMEOUT)
        response.raise_for_status()
        return self._load_payload(response.json(), source=url)

    def _load_payload(self, payload, source: str) -> int:
        sets = payload.get("sets", []) if isinstance(payload, dict) else payload
        if not isinstance(sets, list):
            logger.warning("Question sets from %s are not a list", source)
            return 0
        loaded = sum(1 for set_data in sets if self.add_set(set_data))
        logger.info("Loaded %d/%d question sets from %s", loaded, len(sets), source)
        return loaded


def build_default_catalog() -> QuestionCatalog:
    """Built-in sets plus any configured file or URL sources."""
    catalog = QuestionCatalog(DEFAULT_SETS)
    if config.QUESTION_SETS_FILE:
        try:
            catalog.load_file(config.QUESTION_SETS_FILE)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not load question sets from %s: %s", config.QUESTION_SETS_FILE, e)
    if config.QUESTION_SETS_URL:
        try:
            catalog.load_url(config.QUESTION_SETS_URL)
        except requests.RequestException as e:
            logger.error("HTTP error fetching question sets from %s: %s", config.QUESTION_SETS_URL, e)
        except ValueError as e:
            logger.error("Invalid question set payload from %s: %s", config.QUESTION_SETS_URL, e)
    return catalog
