import logging
from datetime import datetime
from typing import List, Optional

from .database import DatabaseManager
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Question, QuestionType, Survey, SurveyStatus
from .policy import Action, Actor, SurveyResource, can_perform, require
from .schema import QuestionIdAllocator, validate_question, validate_questions

logger = logging.getLogger(__name__)


class QuestionBuilder:
    """Editable copy of a survey's questions.

    Loaded from the stored survey, edited in memory, written back in one
    ``SurveyService.save_questions`` call.
    """

    def __init__(self, survey: Survey):
        self.survey = survey
        self.questions: List[Question] = [
            Question(q.id, q.text, q.type, list(q.options), q.mandatory) for q in survey.questions
        ]
        self.allocator = QuestionIdAllocator.from_questions(self.questions)

    def _index(self, question_id: str) -> int:
        for i, question in enumerate(self.questions):
            if question.id == question_id:
                return i
        raise NotFoundError(f"Question {question_id} is not part of this survey.")

    def add(self, text: str, question_type: QuestionType, options: Optional[List[str]] = None,
            mandatory: bool = False) -> Question:
        question = Question(
            id=None,
            text=(text or '').strip(),
            type=question_type,
            options=list(options or []),
            mandatory=mandatory,
        )
        validate_question(question)
        question.id = self.allocator.next_id()
        self.questions.append(question)
        return question

    def update(self, question_id: str, text: str, question_type: QuestionType,
               options: Optional[List[str]] = None, mandatory: bool = False) -> Question:
        index = self._index(question_id)
        question = Question(question_id, (text or '').strip(), question_type,
                            list(options or []), mandatory)
        validate_question(question)
        self.questions[index] = question
        return question

    def remove(self, question_id: str) -> None:
        del self.questions[self._index(question_id)]

    def move(self, question_id: str, offset: int) -> None:
        """Shift a question up (negative) or down (positive) in the order"""
        index = self._index(question_id)
        target = max(0, min(len(self.questions) - 1, index + offset))
        question = self.questions.pop(index)
        self.questions.insert(target, question)


class SurveyService:
    """Survey CRUD with access checks ahead of every write"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def _load(self, survey_id) -> Survey:
        survey = self.db.get_survey(survey_id)
        if survey is None:
            raise NotFoundError("Survey not found.")
        return survey

    def get(self, actor: Actor, survey_id) -> Survey:
        survey = self._load(survey_id)
        require(actor, Action.VIEW_SURVEY, SurveyResource.from_survey(survey))
        return survey

    def list_for(self, actor: Actor) -> List[Survey]:
        """Surveys shown on the management screen for ``actor``"""
        surveys = self.db.list_surveys()
        return [s for s in surveys
                if can_perform(actor, Action.VIEW_SURVEY, SurveyResource.from_survey(s))]

    def create(self, actor: Actor, name: str, status: SurveyStatus = SurveyStatus.DRAFT) -> Survey:
        require(actor, Action.CREATE_SURVEY)
        name = (name or '').strip()
        if not name:
            raise ValidationError("Survey Name cannot be empty.")
        if self.db.find_survey_by_name(name) is not None:
            raise ConflictError(f"A survey named '{name}' already exists.")

        survey = Survey(name=name, status=status, creator=actor.username, date_created=datetime.now())
        survey.id = self.db.add_survey(survey)
        if survey.id is None:
            raise ValidationError(f"Survey '{name}' could not be saved.")
        return survey

    def edit(self, actor: Actor, survey_id, name: str, status: SurveyStatus) -> Survey:
        survey = self._load(survey_id)
        require(actor, Action.EDIT_SURVEY, SurveyResource.from_survey(survey))

        name = (name or '').strip()
        if not name:
            raise ValidationError("Survey Name cannot be empty.")
        if name != survey.name:
            existing = self.db.find_survey_by_name(name)
            if existing is not None and existing.id != survey.id:
                raise ConflictError(f"A survey named '{name}' already exists.")

        if not self.db.update_survey(survey.id, name, status):
            raise NotFoundError(f"Survey '{survey.name}' could not be updated.")
        survey.name, survey.status = name, status
        return survey

    def set_status(self, actor: Actor, survey_id, status: SurveyStatus) -> Survey:
        survey = self._load(survey_id)
        require(actor, Action.EDIT_SURVEY, SurveyResource.from_survey(survey))
        if not self.db.set_survey_status(survey.id, status):
            raise NotFoundError(f"Survey '{survey.name}' could not be updated.")
        logger.info(f"{actor.username} set survey '{survey.name}' to {status.value}")
        survey.status = status
        return survey

    def delete(self, actor: Actor, survey_id) -> None:
        survey = self._load(survey_id)
        require(actor, Action.DELETE_SURVEY, SurveyResource.from_survey(survey))
        if not self.db.delete_survey(survey.id):
            raise NotFoundError(f"Survey '{survey.name}' could not be deleted.")
        logger.info(f"{actor.username} deleted survey '{survey.name}'")

    def builder(self, actor: Actor, survey_id) -> QuestionBuilder:
        survey = self._load(survey_id)
        require(actor, Action.MANAGE_QUESTIONS, SurveyResource.from_survey(survey))
        return QuestionBuilder(survey)

    def save_questions(self, actor: Actor, builder: QuestionBuilder) -> Survey:
        survey = builder.survey
        require(actor, Action.MANAGE_QUESTIONS, SurveyResource.from_survey(survey))
        validate_questions(builder.questions)
        if not self.db.save_questions(survey.id, builder.questions):
            raise NotFoundError(f"Questions for '{survey.name}' could not be saved.")
        survey.questions = list(builder.questions)
        return survey
