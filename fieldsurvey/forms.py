"""Dynamic survey form, independent of the widget toolkit.

``build_form`` turns a survey's ordered questions into one control per
question. A front-end draws each control with whatever widget suits its type
and pushes the user's input back with ``set``; the validator then reads the
typed answers from the form.
"""
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from .models import Answer, ListAnswer, Question, QuestionType, ScalarAnswer

logger = logging.getLogger(__name__)


class FormControl:
    """Input bound to one question"""

    widget = None

    def __init__(self, question: Question):
        self.question = question

    @property
    def question_id(self) -> str:
        return self.question.id

    @property
    def value(self):
        raise NotImplementedError

    def set(self, value) -> None:
        raise NotImplementedError

    def reset(self) -> None:
        raise NotImplementedError

    @property
    def answered(self) -> bool:
        return self.to_answer().answered

    def to_answer(self) -> Answer:
        raise NotImplementedError


class TextControl(FormControl):
    widget = 'text'

    def __init__(self, question: Question):
        super().__init__(question)
        self._text = ''

    @property
    def value(self) -> str:
        return self._text

    def set(self, value) -> None:
        self._text = '' if value is None else str(value)

    def reset(self) -> None:
        self._text = ''

    def to_answer(self) -> ScalarAnswer:
        return ScalarAnswer(self._text.strip())


class RatingControl(TextControl):
    """Free-form rating entry (e.g. 1-5 or 1-10); numbers are stored as text"""

    widget = 'rating'

    def set(self, value) -> None:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        super().set(value)


class SingleChoiceControl(FormControl):
    widget = 'radio'

    def __init__(self, question: Question):
        super().__init__(question)
        self._selected: Optional[str] = None

    @property
    def options(self) -> List[str]:
        return list(self.question.options)

    @property
    def value(self) -> Optional[str]:
        return self._selected

    def set(self, value) -> None:
        if value is not None and value not in self.question.options:
            raise ValueError(f"'{value}' is not an option of question {self.question_id}")
        self._selected = value

    def reset(self) -> None:
        self._selected = None

    def to_answer(self) -> ScalarAnswer:
        return ScalarAnswer(self._selected or '')


class MultiChoiceControl(FormControl):
    widget = 'checkbox'

    def __init__(self, question: Question):
        super().__init__(question)
        self._checked = set()

    @property
    def options(self) -> List[str]:
        return list(self.question.options)

    @property
    def value(self) -> List[str]:
        # option order, not click order
        return [option for option in self.question.options if option in self._checked]

    def set(self, value) -> None:
        selected = set(value or [])
        unknown = selected.difference(self.question.options)
        if unknown:
            raise ValueError(
                f"{', '.join(sorted(unknown))} not options of question {self.question_id}"
            )
        self._checked = selected

    def toggle(self, option: str, checked: bool) -> None:
        if option not in self.question.options:
            raise ValueError(f"'{option}' is not an option of question {self.question_id}")
        if checked:
            self._checked.add(option)
        else:
            self._checked.discard(option)

    def reset(self) -> None:
        self._checked = set()

    def to_answer(self) -> ListAnswer:
        return ListAnswer(self.value)


CONTROL_TYPES = {
    QuestionType.TEXT_INPUT: TextControl,
    QuestionType.SINGLE_CHOICE: SingleChoiceControl,
    QuestionType.MULTI_CHOICE: MultiChoiceControl,
    QuestionType.RATING: RatingControl,
}


class SurveyForm:
    """Ordered set of controls for one survey"""

    def __init__(self, questions: List[Question], controls: 'OrderedDict[str, FormControl]'):
        self.questions = questions
        self.controls = controls

    def __iter__(self):
        return iter(self.controls.values())

    def __len__(self):
        return len(self.controls)

    def control(self, question_id: str) -> FormControl:
        return self.controls[question_id]

    def value(self, question_id: str):
        """Current user-entered value in the control's native representation"""
        return self.controls[question_id].value

    def set(self, question_id: str, value) -> None:
        self.controls[question_id].set(value)

    def answers(self) -> Dict[str, Answer]:
        return OrderedDict((qid, control.to_answer()) for qid, control in self.controls.items())

    def answered_count(self) -> int:
        return sum(1 for control in self.controls.values() if control.answered)

    def reset(self) -> None:
        for control in self.controls.values():
            control.reset()


def build_form(questions: Iterable[Question]) -> SurveyForm:
    """Create one control per question, skipping types with no renderer"""
    questions = list(questions)
    controls = OrderedDict()
    for question in questions:
        control_type = CONTROL_TYPES.get(question.type)
        if control_type is None:
            logger.warning(f"Unrecognized question type for question ID {question.id}; no input rendered")
            continue
        controls[question.id] = control_type(question)
    return SurveyForm(questions, controls)
