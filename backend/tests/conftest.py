from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app import create_app
from config import TestConfig
from models import (
    db, User, RoleEnum, Question, DifficultyEnum, ExamSession, ExamResult, SessionStatusEnum
)
from scoring import compute_score


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database, so separate sessions get separate connections."""
    config = type('FileConfig', (TestConfig,), {'DATABASE_URL': f"sqlite:///{tmp_path / 'exams.db'}"})
    app = create_app(config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(name='Student', role=RoleEnum.STUDENT, course='BSGE'):
        user = User(name=name, role=role, course=course)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_questions(app):
    def _make(n, course='BSGE', subject='Geodesy', area=None, active=True, answer='A'):
        questions = []
        for i in range(n):
            q = Question(course=course, subject=subject, area=area,
                         text=f'{subject} question {i + 1}',
                         explanation=f'Explanation {i + 1}',
                         difficulty=DifficultyEnum.MEDIUM, category='Theory',
                         is_active=active)
            q.options = ['first', 'second', 'third', 'fourth']
            q.set_answer_key(answer)
            db.session.add(q)
            questions.append(q)
        db.session.commit()
        return questions
    return _make


@pytest.fixture
def make_result(app):
    """Graded session + result row, bypassing the grading engine."""
    def _make(user, correct, total, course='BSGE', completed_at=None,
              status=SessionStatusEnum.COMPLETED, results=None):
        completed_at = completed_at or datetime.now(timezone.utc)
        started_at = completed_at - timedelta(minutes=30)
        exam = ExamSession(user_id=user.id, user_name=user.name, course=course, subject='Geodesy',
                           question_ids=[], answers={}, status=status, total_questions=total,
                           started_at=started_at, completed_at=completed_at)
        db.session.add(exam)
        db.session.flush()
        result = ExamResult(exam_session_id=exam.id, user_id=user.id, user_name=user.name,
                            course=course, subject='Geodesy', score=compute_score(correct, total),
                            correct_count=correct, total_questions=total, results=results or [], violations=[],
                            violation_count=0, was_flagged=status is SessionStatusEnum.FLAGGED,
                            status=status, started_at=started_at, completed_at=completed_at,
                            time_taken=1800)
        db.session.add(result)
        db.session.commit()
        return result
    return _make


@pytest.fixture
def auth_header(app):
    def _header(user=None, user_id=None, role=None):
        payload = {
            'user_id': user.id if user is not None else user_id,
            'role': role or (user.role.value if user is not None else RoleEnum.STUDENT.value),
            'exp': datetime.now(timezone.utc) + app.config['JWT_EXPIRATION_DELTA'],
        }
        token = jwt.encode(payload, app.config['SECRET_KEY'], algorithm='HS256')
        return {'Authorization': f'Bearer {token}'}
    return _header
