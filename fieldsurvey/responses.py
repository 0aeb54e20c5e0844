import logging
from datetime import datetime
from typing import List, Mapping, Union

from .database import DatabaseManager
from .errors import NotFoundError, ValidationError
from .forms import SurveyForm, build_form
from .models import Response, Survey, SurveyStatus
from .policy import Action, Actor, SurveyResource, can_perform, require
from .validation import validate_response

logger = logging.getLogger(__name__)


class ResponseService:
    """Survey taking: load a form for a survey and store validated submissions"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def available_surveys(self, actor: Actor) -> List[Survey]:
        """Surveys the actor may currently submit responses to"""
        surveys = self.db.list_surveys({'status': SurveyStatus.ACTIVE.value})
        return [s for s in surveys
                if can_perform(actor, Action.SUBMIT_RESPONSE, SurveyResource.from_survey(s))]

    def open_form(self, actor: Actor, survey_id) -> SurveyForm:
        survey = self._load(survey_id)
        require(actor, Action.SUBMIT_RESPONSE, SurveyResource.from_survey(survey))
        return build_form(survey.questions)

    def submit(self, actor: Actor, survey_id,
               collected: Union[SurveyForm, Mapping[str, object]]) -> Response:
        """Validate and store one submission; nothing is written on rejection"""
        survey = self._load(survey_id)
        require(actor, Action.SUBMIT_RESPONSE, SurveyResource.from_survey(survey))

        answers = validate_response(survey.questions, collected)

        response = Response(
            survey_id=survey.id,
            user_id=actor.username,
            answers=answers,
            timestamp=datetime.now(),
        )
        response.id = self.db.insert_response(response)
        if response.id is None:
            raise ValidationError("Failed to save response due to a database error.")

        logger.info(f"Survey '{survey.name}' submitted by user {actor.username}")
        if isinstance(collected, SurveyForm):
            collected.reset()
        return response

    def _load(self, survey_id) -> Survey:
        survey = self.db.get_survey(survey_id)
        if survey is None:
            raise NotFoundError("Please select a survey.")
        return survey
