import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

STALE_ANSWER_POLICIES = ('tolerate', 'drop', 'flag')


class Config:
    """Application configuration management"""

    # Database configuration
    MONGO_URI = os.getenv('MONGO_URI', 'mongodb://localhost:27017/')
    DATABASE_NAME = os.getenv('DATABASE_NAME', 'FieldSurveyDB')

    # Security configuration
    SEED_ADMIN_USERNAME = os.getenv('SEED_ADMIN_USERNAME', 'admin')
    SEED_ADMIN_PASSWORD = os.getenv('SEED_ADMIN_PASSWORD', 'admin123')  # Change this!
    MAX_ADMINS = int(os.getenv('MAX_ADMINS', '3'))
    MIN_PASSWORD_LENGTH = int(os.getenv('MIN_PASSWORD_LENGTH', '6'))
    BCRYPT_ROUNDS = int(os.getenv('BCRYPT_ROUNDS', '12'))

    # Reporting: what to do with answers whose question no longer exists
    STALE_ANSWER_POLICY = os.getenv('STALE_ANSWER_POLICY', 'tolerate').lower()

    # Application settings
    APP_NAME = os.getenv('APP_NAME', 'Field Survey Manager')
    APP_VERSION = os.getenv('APP_VERSION', '1.0.0')
    LOG_FILE = os.getenv('LOG_FILE', 'survey_app.log')
    DEBUG_MODE = os.getenv('DEBUG_MODE', 'False').lower() == 'true'

    @classmethod
    def validate(cls):
        """Reject settings the application cannot run with"""
        if cls.STALE_ANSWER_POLICY not in STALE_ANSWER_POLICIES:
            raise ValueError(
                f"STALE_ANSWER_POLICY must be one of {', '.join(STALE_ANSWER_POLICIES)}, "
                f"got '{cls.STALE_ANSWER_POLICY}'"
            )
        if cls.MAX_ADMINS < 1:
            raise ValueError("MAX_ADMINS must be at least 1")


def configure_logging(config=Config):
    """Configure file and console logging for the whole application"""
    handlers = [logging.StreamHandler()]
    if config.LOG_FILE:
        handlers.insert(0, logging.FileHandler(config.LOG_FILE))

    logging.basicConfig(
        level=logging.DEBUG if config.DEBUG_MODE else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers
    )
