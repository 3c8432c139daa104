import exam_engine
from exam_scope import TopicOnlyScope
from models import db, User, Question, ExamTimer
from seed import seed_data, DEMO_USERS, DEMO_QUESTIONS, DEMO_TIMERS


def test_seed_is_idempotent(app):
    seed_data(app)
    seed_data(app)

    assert User.query.count() == len(DEMO_USERS)
    assert Question.query.count() == len(DEMO_QUESTIONS)
    assert ExamTimer.query.count() == len(DEMO_TIMERS)


def test_seeded_bank_can_start_an_exam(app):
    seed_data(app)
    student = User.query.filter_by(name='Demo Student (BSGE)').one()

    exam = exam_engine.start_exam(db.session, student.id, TopicOnlyScope('BSGE', 'Geodesy'))
    assert exam['totalQuestions'] == 2
    assert exam['timer'] == 30 * 60
