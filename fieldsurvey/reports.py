"""Survey summary, per-question charts and per-response tables."""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import altair as alt
import pandas as pd

from .aggregation import Aggregation, aggregate, chart_kind
from .database import DatabaseManager
from .errors import NotFoundError
from .models import Question, Response, Survey
from .policy import Action, Actor, SurveyResource, report_filter, require

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d'
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'
TIMESTAMP_COLUMN = 'Timestamp'
NO_ANSWER_LABEL = '(no answer)'

SUMMARY_COLUMNS = [
    'Survey ID', 'Survey Name', 'Status', 'Number of Questions', 'Date Created', 'Total Responses'
]


@dataclass
class ReportRow:
    survey_id: str
    name: str
    status: str
    num_questions: int
    date_created: str
    total_responses: int

    def as_list(self) -> list:
        return [self.survey_id, self.name, self.status, self.num_questions,
                self.date_created, self.total_responses]


@dataclass
class DetailedReport:
    survey: Survey
    # column key (question id or Timestamp) -> header text, in display order
    columns: 'OrderedDict[str, str]'
    rows: List[Dict[str, str]] = field(default_factory=list)
    stale_question_ids: List[str] = field(default_factory=list)

    def to_frame(self) -> pd.DataFrame:
        data = [[row.get(key, '') for key in self.columns] for row in self.rows]
        return pd.DataFrame(data, columns=list(self.columns.values()))


def summary_frame(rows: List[ReportRow]) -> pd.DataFrame:
    return pd.DataFrame([row.as_list() for row in rows], columns=SUMMARY_COLUMNS)


def rating_frame(result: Aggregation) -> pd.DataFrame:
    """Rating counts in numeric label order, indexed by rating for st.bar_chart"""
    return pd.DataFrame(result.ordered(), columns=['Rating', 'Responses']).set_index('Rating')


def pie_chart(result: Aggregation) -> alt.Chart:
    """Share of each choice label as a pie.

    A blank label comes from an optional question left unanswered and is
    shown as "(no answer)".
    """
    frame = pd.DataFrame(result.proportions(), columns=['Answer', 'Responses', 'Percent'])
    frame['Answer'] = frame['Answer'].replace('', NO_ANSWER_LABEL)
    return alt.Chart(frame).mark_arc().encode(
        theta=alt.Theta('Responses:Q'),
        color=alt.Color('Answer:N', sort=None),
        tooltip=['Answer', 'Responses', alt.Tooltip('Percent:Q', format='.1f')],
    )


class ReportService:
    def __init__(self, db: DatabaseManager, config):
        self.db = db
        self.config = config

    @property
    def stale_policy(self) -> str:
        return self.config.STALE_ANSWER_POLICY

    def _load(self, actor: Actor, survey_id) -> Survey:
        survey = self.db.get_survey(survey_id)
        if survey is None:
            raise NotFoundError("Survey not found.")
        require(actor, Action.VIEW_REPORT, SurveyResource.from_survey(survey))
        return survey

    def summary(self, actor: Actor) -> List[ReportRow]:
        """One row per survey the actor may report on, with its response count"""
        query = report_filter(actor)
        if query is None:
            require(actor, Action.VIEW_REPORT)

        counts = self.db.response_counts()
        rows = []
        for survey in self.db.list_surveys(query):
            rows.append(ReportRow(
                survey_id=survey.id,
                name=survey.name,
                status=survey.status.value,
                num_questions=survey.num_questions,
                date_created=survey.date_created.strftime(DATE_FORMAT) if survey.date_created else 'N/A',
                total_responses=counts.get(survey.id, 0),
            ))

        if not rows:
            logger.warning(f"Report query returned zero surveys for user '{actor.username}'")
        logger.info(f"Loaded {len(rows)} reports for user '{actor.username}'")
        return rows

    def chartable_questions(self, actor: Actor, survey_id) -> List[Question]:
        survey = self._load(actor, survey_id)
        return [q for q in survey.questions if chart_kind(q.type) is not None]

    def question_chart(self, actor: Actor, survey_id, question_id: str) -> Tuple[Aggregation, Optional[str]]:
        """Answer distribution for one question and the chart it should be drawn as"""
        survey = self._load(actor, survey_id)
        question = survey.question(question_id)
        if question is None and self.stale_policy == 'drop':
            raise NotFoundError(f"Question {question_id} is no longer part of '{survey.name}'.")
        if question is None:
            logger.warning(f"Aggregating answers for question {question_id}, which '{survey.name}' no longer has")

        responses = self.db.responses_for_survey(survey)
        result = aggregate(survey.id, question_id, responses)
        return result, chart_kind(question.type) if question else None

    def detailed(self, actor: Actor, survey_id) -> DetailedReport:
        """One row per submission, one column per current question"""
        survey = self._load(actor, survey_id)

        columns = OrderedDict()
        columns[TIMESTAMP_COLUMN] = TIMESTAMP_COLUMN
        for question in survey.questions:
            columns[question.id] = question.text
        known = set(columns)

        report = DetailedReport(survey=survey, columns=columns)
        stale = []

        for response in self.db.responses_for_survey(survey):
            report.rows.append(self._row(response, known, stale))

        if stale:
            report.stale_question_ids = stale
            if self.stale_policy == 'flag':
                logger.warning(
                    f"Survey '{survey.name}' has answers for removed questions: {', '.join(stale)}"
                )
                for question_id in stale:
                    columns[question_id] = f"{question_id} (removed)"
        return report

    def _row(self, response: Response, known: set, stale: List[str]) -> Dict[str, str]:
        row = {
            TIMESTAMP_COLUMN: response.timestamp.strftime(TIMESTAMP_FORMAT) if response.timestamp else 'N/A'
        }
        for entry in response.answers:
            if entry.question_id not in known:
                if entry.question_id not in stale:
                    stale.append(entry.question_id)
                if self.stale_policy == 'drop':
                    continue
            row[entry.question_id] = entry.answer.display()
        return row
