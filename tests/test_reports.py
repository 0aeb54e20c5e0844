import io
from datetime import datetime

import pandas as pd
import pytest

from fieldsurvey import export
from fieldsurvey.aggregation import Aggregation
from fieldsurvey.errors import AccessDeniedError, NotFoundError
from fieldsurvey.models import (
    AnswerEntry, ListAnswer, QuestionType, Response, ScalarAnswer, Survey, SurveyStatus
)
from fieldsurvey.reports import NO_ANSWER_LABEL, pie_chart, rating_frame


def add_response(db, survey, answers, timestamp):
    entries = [
        AnswerEntry(qid, ListAnswer(value) if isinstance(value, list) else ScalarAnswer(value))
        for qid, value in answers.items()
    ]
    return db.insert_response(Response(survey.id, 'dana', entries, timestamp))


@pytest.fixture
def answered_survey(active_survey, db):
    add_response(db, active_survey, {'Q1': 'Yes', 'Q2': ['Water', 'Roads'], 'Q3': '4', 'Q4': ''},
                 datetime(2024, 1, 5, 10, 0, 0))
    add_response(db, active_survey, {'Q1': 'No', 'Q2': ['Water'], 'Q3': '10'},
                 datetime(2024, 1, 6, 8, 30, 0))
    return active_survey


def test_submitted_answer_shows_up_in_chart(active_survey, response_service, report_service,
                                            dana, alice):
    response_service.submit(dana, active_survey.id, {'Q1': 'Yes'})
    result, kind = report_service.question_chart(alice, active_survey.id, 'Q1')
    assert result.counts == {'Yes': 1}
    assert kind == 'pie'


def test_admin_builds_activates_and_charts_a_survey(seeded, survey_service, response_service,
                                                    report_service, admin, dana):
    survey = survey_service.create(admin, 'Satisfaction')
    assert survey.status is SurveyStatus.DRAFT

    builder = survey_service.builder(admin, survey.id)
    question = builder.add('How satisfied are you?', QuestionType.SINGLE_CHOICE, ['Yes', 'No'],
                           mandatory=True)
    survey_service.save_questions(admin, builder)
    survey_service.set_status(admin, survey.id, SurveyStatus.ACTIVE)

    response_service.submit(dana, survey.id, {question.id: 'Yes'})

    result, kind = report_service.question_chart(admin, survey.id, question.id)
    assert question.id == 'Q1'
    assert result.counts == {'Yes': 1}
    assert kind == 'pie'


def test_rating_chart_is_a_bar_chart(answered_survey, report_service, admin):
    result, kind = report_service.question_chart(admin, answered_survey.id, 'Q3')
    assert kind == 'bar'
    assert result.ordered() == [('4', 1), ('10', 1)]


def test_chartable_questions_skip_free_text(answered_survey, report_service, alice):
    questions = report_service.chartable_questions(alice, answered_survey.id)
    assert [q.id for q in questions] == ['Q1', 'Q2', 'Q3']


def test_choice_chart_is_drawn_as_a_pie(answered_survey, report_service, alice):
    result, _ = report_service.question_chart(alice, answered_survey.id, 'Q2')
    chart = pie_chart(result)
    assert getattr(chart.mark, 'type', chart.mark) == 'arc'
    assert chart.data['Answer'].tolist() == ['Water', 'Roads']
    assert chart.data['Responses'].tolist() == [2, 1]


def test_pie_names_the_blank_slice():
    result = Aggregation('Q1', counts={'Yes': 3, '': 1}, total_tallied=4, responses_scanned=4)
    frame = pie_chart(result).data
    assert frame['Answer'].tolist() == ['Yes', NO_ANSWER_LABEL]
    assert frame['Percent'].tolist() == [75.0, 25.0]


def test_rating_frame_is_in_numeric_order(answered_survey, report_service, admin):
    result, _ = report_service.question_chart(admin, answered_survey.id, 'Q3')
    frame = rating_frame(result)
    assert frame.index.tolist() == ['4', '10']
    assert frame['Responses'].tolist() == [1, 1]


class TestSummary:
    def test_rows(self, answered_survey, report_service, alice):
        rows = report_service.summary(alice)
        assert len(rows) == 1
        row = rows[0]
        assert row.survey_id == answered_survey.id
        assert (row.name, row.status, row.num_questions, row.total_responses) == (
            'Satisfaction', 'Active', 4, 2
        )
        assert row.date_created == answered_survey.date_created.strftime('%Y-%m-%d')

    def test_creators_see_only_their_surveys(self, answered_survey, report_service, bob, admin):
        assert report_service.summary(bob) == []
        assert len(report_service.summary(admin)) == 1

    def test_creator_match_ignores_case(self, seeded, db, report_service, survey_service, alice):
        legacy = Survey(name='Legacy', creator='ALICE', status=SurveyStatus.ACTIVE,
                        date_created=datetime(2023, 3, 1))
        legacy.id = db.add_survey(legacy)

        assert [row.name for row in report_service.summary(alice)] == ['Legacy']
        assert report_service.detailed(alice, legacy.id).rows == []
        # reports ignore case, editing does not
        with pytest.raises(AccessDeniedError):
            survey_service.edit(alice, legacy.id, 'Legacy', SurveyStatus.ARCHIVED)

    def test_missing_date_prints_na(self, seeded, db, report_service, admin):
        db.surveys.insert_one({'name': 'Imported', 'status': 'Draft', 'creator': 'admin'})
        assert report_service.summary(admin)[0].date_created == 'N/A'

    def test_data_entry_has_no_reports(self, seeded, report_service, dana):
        with pytest.raises(AccessDeniedError):
            report_service.summary(dana)

    def test_csv(self, seeded, db, report_service, admin):
        survey = Survey(name='Say "hi"', creator='admin', status=SurveyStatus.ACTIVE,
                        date_created=datetime(2024, 1, 5, 9, 0))
        survey.id = db.add_survey(survey)
        add_response(db, survey, {}, datetime(2024, 1, 6))
        add_response(db, survey, {}, datetime(2024, 1, 7))

        csv_text = export.summary_csv(report_service.summary(admin))
        assert csv_text == (
            'Survey ID,Survey Name,Status,Number of Questions,Date Created,Total Responses\n'
            f'"{survey.id}","Say ""hi""","Active",0,"2024-01-05",2\n'
        )


class TestDetailedReport:
    def test_columns_and_rows(self, answered_survey, report_service, alice):
        report = report_service.detailed(alice, answered_survey.id)
        assert list(report.columns.values()) == [
            'Timestamp', 'How satisfied are you?', 'Which services did you use?',
            'Rate the visit', 'Comments',
        ]
        frame = report.to_frame()
        assert frame.iloc[0].tolist() == ['2024-01-05 10:00:00', 'Yes', 'Water, Roads', '4', '']
        # Q4 was never answered in the second response
        assert frame.iloc[1].tolist() == ['2024-01-06 08:30:00', 'No', 'Water', '10', '']

    def test_csv(self, answered_survey, report_service, alice):
        csv_text = export.detailed_csv(report_service.detailed(alice, answered_survey.id))
        assert csv_text.splitlines() == [
            '"Timestamp","How satisfied are you?","Which services did you use?","Rate the visit","Comments"',
            '"2024-01-05 10:00:00","Yes","Water, Roads","4",""',
            '"2024-01-06 08:30:00","No","Water","10",""',
        ]

    def test_excel(self, answered_survey, report_service, alice):
        data = export.detailed_excel(report_service.detailed(alice, answered_survey.id))
        frame = pd.read_excel(io.BytesIO(data), sheet_name='Survey Responses')
        assert list(frame.columns)[0] == 'Timestamp'
        assert len(frame) == 2

    def test_other_creator_is_refused(self, answered_survey, report_service, bob):
        with pytest.raises(AccessDeniedError):
            report_service.detailed(bob, answered_survey.id)

    def test_unknown_survey(self, seeded, report_service, admin):
        with pytest.raises(NotFoundError):
            report_service.detailed(admin, 'missing')


class TestStaleAnswers:
    @pytest.fixture
    def stale_survey(self, answered_survey, db):
        add_response(db, answered_survey, {'Q1': 'Yes', 'Q9': 'removed question'},
                     datetime(2024, 1, 7, 12, 0, 0))
        return answered_survey

    def test_tolerate(self, stale_survey, report_service, alice):
        report = report_service.detailed(alice, stale_survey.id)
        assert report.stale_question_ids == ['Q9']
        assert 'Q9' not in report.columns
        assert report.rows[2]['Q9'] == 'removed question'
        assert len(report.to_frame().columns) == 5

    def test_drop(self, stale_survey, report_service, config, alice):
        config.STALE_ANSWER_POLICY = 'drop'
        report = report_service.detailed(alice, stale_survey.id)
        assert report.stale_question_ids == ['Q9']
        assert 'Q9' not in report.rows[2]
        with pytest.raises(NotFoundError):
            report_service.question_chart(alice, stale_survey.id, 'Q9')

    def test_flag(self, stale_survey, report_service, config, alice):
        config.STALE_ANSWER_POLICY = 'flag'
        frame = report_service.detailed(alice, stale_survey.id).to_frame()
        assert frame.columns[-1] == 'Q9 (removed)'
        assert frame['Q9 (removed)'].tolist() == ['', '', 'removed question']

    def test_chart_of_removed_question(self, stale_survey, report_service, alice):
        result, kind = report_service.question_chart(alice, stale_survey.id, 'Q9')
        assert kind is None
        assert result.counts == {'removed question': 1}


def test_export_filename():
    assert export.export_filename('Water & Power: 2024!') == 'Water  Power 2024_Responses.csv'
    assert export.export_filename('Census', '_Responses.xlsx') == 'Census_Responses.xlsx'
