# backend/config.py
import os
from datetime import timedelta
from dotenv import load_dotenv # Import dotenv

# Load environment variables from .env file (especially for local development)
load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 't', 'yes')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-this-in-production-to-a-strong-secret'

    # Either a plain SQLAlchemy URL or a Cloud SQL instance (all four DB_* values)
    DATABASE_URL = os.environ.get('DATABASE_URL') or 'sqlite:///' + os.path.join(basedir, 'exam_engine.db')
    DB_USER = os.environ.get("DB_USER")
    DB_PASS = os.environ.get("DB_PASS")
    DB_NAME = os.environ.get("DB_NAME")
    INSTANCE_CONNECTION_NAME = os.environ.get("INSTANCE_CONNECTION_NAME")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',') if o.strip()]

    # --- Exam engine tunables ---
    EXAM_DEFAULT_QUESTION_COUNT = int(os.environ.get('EXAM_DEFAULT_QUESTION_COUNT', 50))
    EXAM_VIOLATION_THRESHOLD = int(os.environ.get('EXAM_VIOLATION_THRESHOLD', 3))
    EXAM_ENFORCE_DAILY_LIMIT = _env_flag('EXAM_ENFORCE_DAILY_LIMIT', 'true')
    EXAM_SHUFFLE_SEED = os.environ.get('EXAM_SHUFFLE_SEED') # None -> OS entropy per request
    AREA_SCOPED_COURSES = frozenset(c.strip() for c in os.environ.get('AREA_SCOPED_COURSES', 'BSABEN').split(',') if c.strip())

    # --- Reporting ---
    SCORE_PASSING_THRESHOLD = int(os.environ.get('SCORE_PASSING_THRESHOLD', 75))
    SCORE_EXCELLENT_THRESHOLD = int(os.environ.get('SCORE_EXCELLENT_THRESHOLD', 90))
    HISTORY_PAGE_SIZE = int(os.environ.get('HISTORY_PAGE_SIZE', 10))


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    JWT_EXPIRATION_DELTA = timedelta(hours=1) # Lifetime of tokens minted by the test fixtures
    DATABASE_URL = 'sqlite://'
    DB_USER = DB_PASS = DB_NAME = INSTANCE_CONNECTION_NAME = None
    EXAM_SHUFFLE_SEED = '1234'
