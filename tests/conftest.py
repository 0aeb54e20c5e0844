import mongomock
import pytest

from fieldsurvey.auth import AuthManager
from fieldsurvey.config import Config
from fieldsurvey.database import DatabaseManager
from fieldsurvey.models import Question, QuestionType, Role, SurveyStatus
from fieldsurvey.policy import Actor
from fieldsurvey.reports import ReportService
from fieldsurvey.responses import ResponseService
from fieldsurvey.surveys import SurveyService
from fieldsurvey.users import UserService

PASSWORD = 'secret1'


class FastConfig(Config):
    """Config with a cheap bcrypt work factor and no log file"""
    BCRYPT_ROUNDS = 4
    LOG_FILE = ''
    STALE_ANSWER_POLICY = 'tolerate'
    SEED_ADMIN_USERNAME = 'admin'
    SEED_ADMIN_PASSWORD = 'admin123'
    MAX_ADMINS = 3


@pytest.fixture
def config():
    # fresh subclass so a test can change settings without leaking them
    class TestRunConfig(FastConfig):
        pass
    return TestRunConfig


@pytest.fixture
def db():
    manager = DatabaseManager('mongodb://localhost:27017/', 'FieldSurveyTest',
                              client_factory=mongomock.MongoClient)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def auth(config, db):
    return AuthManager(config, db)


@pytest.fixture
def user_service(db, auth, config):
    return UserService(db, auth, config)


@pytest.fixture
def survey_service(db):
    return SurveyService(db)


@pytest.fixture
def response_service(db):
    return ResponseService(db)


@pytest.fixture
def report_service(db, config):
    return ReportService(db, config)


@pytest.fixture
def seeded(db, auth, user_service):
    """Seed admin plus two Survey Creators and one Data Entry user"""
    user_service.ensure_seed_admin()
    for username, role in [('alice', Role.SURVEY_CREATOR),
                           ('bob', Role.SURVEY_CREATOR),
                           ('dana', Role.DATA_ENTRY)]:
        db.add_user(username, auth.hash_password(PASSWORD), role)
    return db


@pytest.fixture
def admin():
    return Actor('admin', Role.ADMINISTRATOR)


@pytest.fixture
def alice():
    return Actor('alice', Role.SURVEY_CREATOR)


@pytest.fixture
def bob():
    return Actor('bob', Role.SURVEY_CREATOR)


@pytest.fixture
def dana():
    return Actor('dana', Role.DATA_ENTRY)


def make_questions():
    return [
        Question('Q1', 'How satisfied are you?', QuestionType.SINGLE_CHOICE, ['Yes', 'No'], True),
        Question('Q2', 'Which services did you use?', QuestionType.MULTI_CHOICE,
                 ['Water', 'Power', 'Roads'], False),
        Question('Q3', 'Rate the visit', QuestionType.RATING, [], False),
        Question('Q4', 'Comments', QuestionType.TEXT_INPUT, [], False),
    ]


@pytest.fixture
def questions():
    return make_questions()


@pytest.fixture
def active_survey(seeded, survey_service, alice):
    """Alice's Active survey holding the four standard questions"""
    survey = survey_service.create(alice, 'Satisfaction', SurveyStatus.ACTIVE)
    builder = survey_service.builder(alice, survey.id)
    for question in make_questions():
        builder.add(question.text, question.type, question.options, question.mandatory)
    return survey_service.save_questions(alice, builder)
