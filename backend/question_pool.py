# backend/question_pool.py
# Read-only access to the question bank for the exam engine.
import logging

from sqlalchemy import select, func, case

from models import Question, DifficultyEnum, ExamTimer

log = logging.getLogger(__name__)


def fetch_active_pool(db_session, scope):
    """All active questions matching the scope's course/subject/area."""
    stmt = select(Question).filter_by(is_active=True, **scope.question_filters()).order_by(Question.id)
    pool = db_session.execute(stmt).scalars().all()
    log.debug(f"Pool for {scope.question_filters()}: {len(pool)} active questions")
    return pool


def load_questions(db_session, question_ids):
    """Questions for the given ids, in the given order. Ids that no longer exist are skipped."""
    if not question_ids:
        return []
    ids = [int(qid) for qid in question_ids]
    rows = db_session.execute(select(Question).where(Question.id.in_(ids))).scalars().all()
    by_id = {q.id: q for q in rows}
    missing = [qid for qid in ids if qid not in by_id]
    if missing:
        log.warning(f"Questions {missing} referenced by an exam session no longer exist")
    return [by_id[qid] for qid in ids if qid in by_id]


def exam_timer(db_session, scope):
    """Configured time limit in seconds for the scope's topic, 0 when none is set."""
    timer = db_session.execute(
        select(ExamTimer).filter_by(**scope.timer_filters())
    ).scalars().first()
    return timer.seconds if timer else 0


def _difficulty_counts():
    return [
        func.count(Question.id).label('totalQuestions'),
        func.sum(case((Question.difficulty == DifficultyEnum.EASY, 1), else_=0)).label('easyCount'),
        func.sum(case((Question.difficulty == DifficultyEnum.MEDIUM, 1), else_=0)).label('mediumCount'),
        func.sum(case((Question.difficulty == DifficultyEnum.HARD, 1), else_=0)).label('hardCount'),
    ]


def _counts(row):
    return {
        'totalQuestions': int(row.totalQuestions or 0),
        'easyCount': int(row.easyCount or 0),
        'mediumCount': int(row.mediumCount or 0),
        'hardCount': int(row.hardCount or 0),
    }


def available_topics(db_session, course, area_scoped):
    """
    Exam topics a course offers, with active question counts per difficulty.
    Topic-only courses list subjects; area-scoped courses list areas with
    their subjects nested.
    """
    if not area_scoped:
        stmt = select(Question.subject, *_difficulty_counts())\
            .where(Question.course == course, Question.is_active.is_(True))\
            .group_by(Question.subject)\
            .order_by(Question.subject)
        data = [dict(subject=row.subject, **_counts(row)) for row in db_session.execute(stmt)]
        return {'course': course, 'type': 'subjects', 'data': data}

    stmt = select(Question.area, Question.subject, *_difficulty_counts())\
        .where(Question.course == course, Question.is_active.is_(True), Question.area.is_not(None))\
        .group_by(Question.area, Question.subject)\
        .order_by(Question.area, Question.subject)
    areas = {}
    for row in db_session.execute(stmt):
        entry = areas.setdefault(row.area, {'area': row.area, 'subjects': [], 'totalQuestions': 0})
        counts = _counts(row)
        entry['subjects'].append(dict(subject=row.subject, **counts))
        entry['totalQuestions'] += counts['totalQuestions']
    log.debug(f"Course {course}: {len(areas)} areas with active questions")
    return {'course': course, 'type': 'areas', 'data': list(areas.values())}
