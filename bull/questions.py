"""Bull - Question Bank

Supplies the question of each round. Questions are loaded from a JSON
file; if it is missing or malformed a small built-in set is used instead
so a lobby can always play.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from .models import Question

logger = logging.getLogger(__name__)

FALLBACK_QUESTIONS = [
    Question("How many legs does a spider have?", "8", "6", "number"),
    Question("What is the capital of Australia?", "Canberra", "Sydney", "city"),
    Question("What is the chemical symbol for gold?", "Au", "Ag", "symbol"),
    Question("How many players are on a football team on the pitch?", "11", "10", "number"),
    Question("What is the largest ocean on Earth?", "Pacific", "Atlantic", "ocean"),
]


class QuestionBank:

    def __init__(self, questions: Optional[List[Question]] = None):
        self.questions: List[Question] = list(questions) if questions else list(FALLBACK_QUESTIONS)

    @classmethod
    def from_file(cls, path) -> 'QuestionBank':
        return cls(load_questions(path))

    def question_for_round(self, round_number: int) -> Question:
        """The n-th question in file order; the last one once we run out."""
        index = min(max(round_number, 1), len(self.questions)) - 1
        return self.questions[index]

    def __len__(self):
        return len(self.questions)


def load_questions(path) -> List[Question]:
    """Load questions from JSON, falling back to the built-in set."""
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
        questions = [
            Question(
                text=item["text"],
                correct_answer=item["correct_answer"],
                incorrect_answer=item["incorrect_answer"],
                suggested_format=item.get("suggested_format"),
            )
            for item in raw
        ]
    except FileNotFoundError:
        logger.warning(f"Question file {path} not found, using built-in questions")
        return list(FALLBACK_QUESTIONS)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.error(f"Could not read questions from {path}: {e}")
        return list(FALLBACK_QUESTIONS)

    if not questions:
        logger.warning(f"Question file {path} is empty, using built-in questions")
        return list(FALLBACK_QUESTIONS)

    logger.info(f"Loaded {len(questions)} questions from {path}")
    return questions
