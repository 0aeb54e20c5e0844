import logging
from typing import Dict, List, Mapping, Union

from .errors import ValidationError
from .forms import SurveyForm
from .models import (
    Answer, AnswerEntry, ListAnswer, Question, QuestionType, ScalarAnswer
)

logger = logging.getLogger(__name__)


def _coerce(question: Question, raw) -> Answer:
    """Accept either a tagged answer or the form's native value"""
    if isinstance(raw, (ScalarAnswer, ListAnswer)):
        answer = raw
    elif question.type is QuestionType.MULTI_CHOICE:
        if isinstance(raw, str):
            raw = [raw] if raw.strip() else []
        answer = ListAnswer(raw or [])
    else:
        answer = ScalarAnswer('' if raw is None else str(raw))

    if isinstance(answer, ScalarAnswer):
        answer = ScalarAnswer(answer.value.strip())

    if question.type is not None and question.type.is_choice:
        for label in answer.labels:
            if label and label not in question.options:
                raise ValidationError(f"'{label}' is not an option of question '{question.text}'")
    return answer


def validate_response(questions: List[Question],
                      collected: Union[SurveyForm, Mapping[str, object]]) -> List[AnswerEntry]:
    """Check mandatory questions and build the answer set to store.

    Every question with a collected answer gets an entry, answered or not.
    If any mandatory question is unanswered the whole submission is rejected
    and the error lists all of their texts.
    """
    if isinstance(collected, SurveyForm):
        collected = collected.answers()

    entries = []
    missing = []

    for question in questions:
        if question.id not in collected:
            if question.mandatory:
                missing.append(question.text)
            continue

        answer = _coerce(question, collected[question.id])

        if question.mandatory and not answer.answered:
            missing.append(question.text)

        entries.append(AnswerEntry(question.id, answer))

    if missing:
        logger.warning(f"Submission rejected; {len(missing)} mandatory question(s) unanswered")
        raise ValidationError(
            "The following mandatory questions must be answered before submitting:\n- "
            + "\n- ".join(missing),
            missing=missing
        )

    if not entries:
        raise ValidationError("No responses were collected. Check the survey's question types.")

    return entries


def missing_mandatory(questions: List[Question], collected: Dict[str, Answer]) -> List[str]:
    """Texts of mandatory questions still unanswered (for progress display)"""
    try:
        validate_response(questions, collected)
    except ValidationError as e:
        return e.missing
    return []
