import re
from typing import Iterable, List

from .errors import SchemaError
from .models import Question, QuestionType

QUESTION_ID_PREFIX = 'Q'
_ID_PATTERN = re.compile(r'^' + QUESTION_ID_PREFIX + r'(\d+)$')


def validate_question(question: Question) -> None:
    """Check a question against the invariants of its declared type"""
    label = question.id or '(new question)'

    if not question.text or not question.text.strip():
        raise SchemaError(f"Question {label}: question text is required.")

    if not isinstance(question.type, QuestionType):
        raise SchemaError(f"Question {label}: question type is missing or not recognised.")

    if not isinstance(question.mandatory, bool):
        raise SchemaError(f"Question {label}: the mandatory flag must be set to true or false.")

    options = question.options or []
    if question.type.is_choice:
        if not options:
            raise SchemaError(
                f"Question {label}: {question.type.value} questions need at least one option."
            )
        if any(not str(option).strip() for option in options):
            raise SchemaError(f"Question {label}: options cannot be blank.")
        if len(set(options)) != len(options):
            raise SchemaError(f"Question {label}: options must be unique.")
    elif options:
        raise SchemaError(
            f"Question {label}: {question.type.value} questions do not take options."
        )


def validate_questions(questions: Iterable[Question]) -> None:
    seen = set()
    for question in questions:
        validate_question(question)
        if question.id in seen:
            raise SchemaError(f"Duplicate question id {question.id}.")
        seen.add(question.id)


class QuestionIdAllocator:
    """Hands out Q<n> ids for one survey's questions"""

    def __init__(self, next_number: int = 1):
        self.next_number = next_number

    @classmethod
    def from_questions(cls, questions: Iterable[Question]) -> 'QuestionIdAllocator':
        """Start after the highest numeric suffix already in use"""
        highest = 0
        for question in questions:
            match = _ID_PATTERN.match(question.id or '')
            if match:
                highest = max(highest, int(match.group(1)))
        return cls(highest + 1)

    def next_id(self) -> str:
        question_id = f"{QUESTION_ID_PREFIX}{self.next_number}"
        self.next_number += 1
        return question_id


def parse_options(raw: str) -> List[str]:
    """Split builder input (one option per line) into a clean option list"""
    return [line.strip() for line in (raw or '').splitlines() if line.strip()]
