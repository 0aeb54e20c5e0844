import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId

from .errors import SchemaError

logger = logging.getLogger(__name__)


class QuestionType(str, Enum):
    TEXT_INPUT = 'TEXT_INPUT'
    SINGLE_CHOICE = 'SINGLE_CHOICE'
    MULTI_CHOICE = 'MULTI_CHOICE'
    RATING = 'RATING'

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['QuestionType']:
        """Map a stored type name (including legacy aliases) to a QuestionType"""
        if value is None:
            return None
        name = str(value).strip().upper()
        return _TYPE_ALIASES.get(name)

    @property
    def is_choice(self) -> bool:
        return self in (QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE)

    @property
    def is_multi_valued(self) -> bool:
        return self is QuestionType.MULTI_CHOICE


_TYPE_ALIASES = {
    'TEXT_INPUT': QuestionType.TEXT_INPUT,
    'TEXT': QuestionType.TEXT_INPUT,
    'SINGLE_CHOICE': QuestionType.SINGLE_CHOICE,
    'RADIO': QuestionType.SINGLE_CHOICE,
    'MULTI_CHOICE': QuestionType.MULTI_CHOICE,
    'CHECKBOX': QuestionType.MULTI_CHOICE,
    'RATING': QuestionType.RATING,
}


class SurveyStatus(str, Enum):
    DRAFT = 'Draft'
    ACTIVE = 'Active'
    ARCHIVED = 'Archived'


class Role(str, Enum):
    ADMINISTRATOR = 'Administrator'
    SURVEY_CREATOR = 'Survey Creator'
    DATA_ENTRY = 'Data Entry'


# =============================================================================
# ANSWERS
# =============================================================================

@dataclass(frozen=True)
class ScalarAnswer:
    """Single-valued answer (text, single choice, rating)"""
    value: str = ''

    @property
    def answered(self) -> bool:
        return bool(self.value.strip())

    @property
    def labels(self) -> List[str]:
        return [self.value]

    def to_document(self) -> str:
        return self.value

    def display(self) -> str:
        return self.value


@dataclass(frozen=True)
class ListAnswer:
    """Multi-valued answer (multi choice)"""
    values: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'values', tuple(self.values))

    @property
    def answered(self) -> bool:
        return len(self.values) > 0

    @property
    def labels(self) -> List[str]:
        # distinct, first-seen order
        return [v for i, v in enumerate(self.values) if v and v not in self.values[:i]]

    def to_document(self) -> List[str]:
        return list(self.values)

    def display(self) -> str:
        return ', '.join(self.values)


Answer = Union[ScalarAnswer, ListAnswer]


def decode_answer(raw: Any, question_type: Optional[QuestionType] = None) -> Answer:
    """Build a tagged answer from its stored form.

    The declared question type decides the shape. When the question is unknown
    (its id is no longer in the survey) the stored BSON value decides: arrays
    become ListAnswer, anything else is kept as text.
    """
    if question_type is not None:
        if question_type.is_multi_valued:
            if isinstance(raw, (list, tuple)):
                return ListAnswer(str(v) for v in raw)
            return ListAnswer([str(raw)] if raw not in (None, '') else [])
        if isinstance(raw, (list, tuple)):
            logger.warning(f"List stored for single-valued {question_type.value} question; joining values")
            return ScalarAnswer(', '.join(str(v) for v in raw))
        return ScalarAnswer('' if raw is None else str(raw))

    if isinstance(raw, (list, tuple)):
        return ListAnswer(str(v) for v in raw)
    return ScalarAnswer('' if raw is None else str(raw))


# =============================================================================
# DOCUMENTS
# =============================================================================

@dataclass
class Question:
    id: str
    text: str
    type: Optional[QuestionType]
    options: List[str] = field(default_factory=list)
    mandatory: bool = False

    def to_document(self) -> Dict:
        return {
            'id': self.id,
            'text': self.text,
            'type': self.type.value if self.type else None,
            'options': list(self.options),
            'isMandatory': self.mandatory,
        }

    @classmethod
    def from_document(cls, doc: Dict) -> 'Question':
        return cls(
            id=doc.get('id'),
            text=doc.get('text', ''),
            type=QuestionType.parse(doc.get('type')),
            options=list(doc.get('options') or []),
            mandatory=doc.get('isMandatory', False),
        )


@dataclass
class Survey:
    name: str
    status: SurveyStatus = SurveyStatus.DRAFT
    creator: Optional[str] = None
    date_created: Optional[datetime] = None
    questions: List[Question] = field(default_factory=list)
    id: Optional[str] = None

    @property
    def num_questions(self) -> int:
        return len(self.questions)

    def question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def to_document(self) -> Dict:
        doc = {
            'name': self.name,
            'status': self.status.value,
            'creator': self.creator,
            'dateCreated': self.date_created,
            'questions': [q.to_document() for q in self.questions],
            'numQuestions': self.num_questions,
        }
        if self.id:
            doc['_id'] = ObjectId(self.id)
        return doc

    @classmethod
    def from_document(cls, doc: Dict) -> 'Survey':
        status = doc.get('status', SurveyStatus.DRAFT.value)
        try:
            status = SurveyStatus(status)
        except ValueError:
            raise SchemaError(f"Survey '{doc.get('name', '')}' has an unknown status: {status!r}")
        return cls(
            id=str(doc['_id']) if doc.get('_id') is not None else None,
            name=doc.get('name', ''),
            status=status,
            creator=doc.get('creator'),
            date_created=doc.get('dateCreated'),
            questions=[Question.from_document(q) for q in doc.get('questions') or []],
        )


@dataclass
class AnswerEntry:
    question_id: str
    answer: Answer

    def to_document(self) -> Dict:
        return {'question_id': self.question_id, 'answer': self.answer.to_document()}


@dataclass
class Response:
    survey_id: str
    user_id: str
    answers: List[AnswerEntry]
    timestamp: Optional[datetime] = None
    id: Optional[str] = None

    def answer_for(self, question_id: str) -> Optional[Answer]:
        for entry in self.answers:
            if entry.question_id == question_id:
                return entry.answer
        return None

    def to_document(self) -> Dict:
        return {
            'survey_id': ObjectId(self.survey_id),
            'user_id': self.user_id,
            'timestamp': self.timestamp,
            'answers': [a.to_document() for a in self.answers],
        }

    @classmethod
    def from_document(cls, doc: Dict, survey: Optional[Survey] = None) -> 'Response':
        """Decode a stored response, typing answers by the survey's current questions"""
        entries = []
        for raw in doc.get('answers') or []:
            question_id = raw.get('question_id')
            if question_id is None:
                continue
            question = survey.question(question_id) if survey else None
            entries.append(AnswerEntry(
                question_id,
                decode_answer(raw.get('answer'), question.type if question else None)
            ))
        return cls(
            id=str(doc['_id']) if doc.get('_id') is not None else None,
            survey_id=str(doc.get('survey_id')),
            user_id=doc.get('user_id'),
            timestamp=doc.get('timestamp'),
            answers=entries,
        )


@dataclass
class User:
    username: str
    role: Role
    password_hash: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict) -> 'User':
        try:
            role = Role(doc.get('role'))
        except ValueError:
            raise SchemaError(f"User '{doc.get('username')}' has an unknown role: {doc.get('role')!r}")
        return cls(
            username=doc.get('username'),
            role=role,
            password_hash=doc.get('password'),
        )
