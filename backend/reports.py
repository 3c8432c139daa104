# backend/reports.py
# Read-side views over ExamResult: a student's history, course-wide score
# statistics and per-answer breakdowns for staff.
import logging
import math

from sqlalchemy import select, func, or_, cast, String

from models import ExamResult, Question, SessionStatusEnum, isoformat
from scoring import round_half_up, percentage

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
PASSING_THRESHOLD = 75
EXCELLENT_THRESHOLD = 90

# Results that count towards statistics
GRADED_STATUSES = (SessionStatusEnum.COMPLETED, SessionStatusEnum.FLAGGED)

# Minimum average for each letter grade, highest first
GRADE_STEPS = (
    (97, 'A+'), (93, 'A'), (90, 'A-'),
    (87, 'B+'), (83, 'B'), (80, 'B-'),
    (77, 'C+'), (73, 'C'), (70, 'C-'),
    (67, 'D+'), (65, 'D'),
)


def clamp_page(page, limit, default_limit=10):
    page = max(1, page or 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit or default_limit))
    return page, limit


def _pagination(total, page, limit):
    return {
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': math.ceil(total / limit) if total else 0,
    }


def exam_history(db_session, user_id, course=None, page=1, limit=10):
    """
    One page of a user's results, newest first, plus aggregates computed over
    every matching result (not just the page).
    """
    page, limit = clamp_page(page, limit)
    filters = [ExamResult.user_id == user_id]
    if course:
        filters.append(ExamResult.course == course)

    rows = db_session.execute(
        select(ExamResult).where(*filters)
        .order_by(ExamResult.completed_at.desc(), ExamResult.id.desc())
        .offset((page - 1) * limit).limit(limit)
    ).scalars().all()

    agg = db_session.execute(
        select(
            func.count(ExamResult.id).label('total_exams'),
            func.avg(ExamResult.score).label('average_score'),
            func.max(ExamResult.score).label('highest_score'),
            func.min(ExamResult.score).label('lowest_score'),
            func.sum(ExamResult.total_questions).label('total_questions'),
            func.sum(ExamResult.correct_count).label('total_correct'),
        ).where(*filters)
    ).one()

    total = int(agg.total_exams or 0)
    statistics = {
        'totalExams': total,
        'averageScore': round_half_up(agg.average_score, 1) if agg.average_score is not None else 0,
        'highestScore': int(agg.highest_score or 0),
        'lowestScore': int(agg.lowest_score or 0),
        'totalQuestions': int(agg.total_questions or 0),
        'totalCorrect': int(agg.total_correct or 0),
    }
    return {
        'results': [r.to_summary() for r in rows],
        'pagination': _pagination(total, page, limit),
        'statistics': statistics,
    }


def _per_student_rows(db_session, course=None):
    stmt = select(
        ExamResult.user_id,
        func.max(ExamResult.user_name).label('user_name'),
        func.count(ExamResult.id).label('exams_taken'),
        func.sum(ExamResult.correct_count).label('total_correct'),
        func.sum(ExamResult.total_questions).label('total_questions'),
        func.max(ExamResult.score).label('highest_score'),
        func.min(ExamResult.score).label('lowest_score'),
        func.max(ExamResult.completed_at).label('last_exam'),
    ).where(ExamResult.status.in_(GRADED_STATUSES)).group_by(ExamResult.user_id)
    if course:
        stmt = stmt.where(ExamResult.course == course)
    return db_session.execute(stmt).all()


def _student_average(row):
    """A student's average is their overall correct ratio across all graded exams."""
    total = int(row.total_questions or 0)
    if not total:
        return 0.0
    return int(row.total_correct or 0) * 100.0 / total


def score_statistics(db_session, course=None, passing=PASSING_THRESHOLD, excellent=EXCELLENT_THRESHOLD):
    """totalStudents, averageScore, passRate and excellentCount over graded results."""
    averages = [_student_average(row) for row in _per_student_rows(db_session, course)]
    if not averages:
        return {'totalStudents': 0, 'averageScore': 0, 'passRate': 0, 'excellentCount': 0}

    passing_count = sum(1 for avg in averages if avg >= passing)
    return {
        'totalStudents': len(averages),
        'averageScore': round_half_up(sum(averages) / len(averages), 1),
        'passRate': percentage(passing_count, len(averages), digits=1),
        'excellentCount': sum(1 for avg in averages if avg >= excellent),
    }


def letter_grade(average):
    for minimum, grade in GRADE_STEPS:
        if average >= minimum:
            return grade
    return 'F'


def performance_band(average, passing=PASSING_THRESHOLD, excellent=EXCELLENT_THRESHOLD):
    if average >= excellent:
        return 'excellent'
    if average >= passing:
        return 'good'
    return 'needs-improvement'


def student_scores(db_session, course=None, page=1, limit=20, band=None, search='',
                   passing=PASSING_THRESHOLD, excellent=EXCELLENT_THRESHOLD):
    """Per-student score table, best average first, optionally filtered by band or name."""
    page, limit = clamp_page(page, limit, default_limit=20)
    needle = (search or '').strip().lower()

    scores = []
    for row in _per_student_rows(db_session, course):
        average = _student_average(row)
        entry = {
            'studentId': row.user_id,
            'name': row.user_name or 'Unknown Student',
            'course': course,
            'examsTaken': int(row.exams_taken),
            'averageScore': round_half_up(average, 1),
            'highestScore': row.highest_score,
            'lowestScore': row.lowest_score,
            'status': performance_band(average, passing, excellent),
            'grade': letter_grade(average),
            'lastExam': isoformat(row.last_exam),
        }
        if band and entry['status'] != band:
            continue
        if needle and needle not in entry['name'].lower():
            continue
        scores.append(entry)

    scores.sort(key=lambda s: (-s['averageScore'], s['studentId']))
    start = (page - 1) * limit
    return {
        'scores': scores[start:start + limit],
        'pagination': _pagination(len(scores), page, limit),
    }


def answer_rows(db_session, course=None, is_correct=None, search='', page=1, limit=12):
    """
    Graded answers flattened to one row per question, newest submission first.
    `is_correct` filters rows; `course` and `search` (student name, or exact
    student id) filter whole results.
    """
    page, limit = clamp_page(page, limit, default_limit=12)
    stmt = select(ExamResult).where(ExamResult.status.in_(GRADED_STATUSES))
    if course:
        stmt = stmt.where(ExamResult.course == course)
    needle = (search or '').strip()
    if needle:
        stmt = stmt.where(or_(ExamResult.user_name.ilike(f'%{needle}%'),
                              cast(ExamResult.user_id, String) == needle))
    stmt = stmt.order_by(ExamResult.completed_at.desc(), ExamResult.id.desc())

    rows = []
    for result in db_session.execute(stmt).scalars():
        for index, answer in enumerate(result.results or []):
            correct = bool(answer.get('isCorrect'))
            if is_correct is not None and correct is not is_correct:
                continue
            rows.append({
                'id': f'{result.id}-{index}',
                'examResultId': result.id,
                'studentId': result.user_id,
                'studentName': result.user_name,
                'questionId': answer.get('questionId'),
                'questionText': answer.get('questionText'),
                'subject': answer.get('subject'),
                'category': answer.get('category'),
                'course': result.course,
                'selectedAnswer': answer.get('userAnswer'),
                'correctAnswer': answer.get('correctAnswer'),
                'isCorrect': correct,
                'difficulty': answer.get('difficulty'),
                'submittedAt': isoformat(result.completed_at),
            })

    start = (page - 1) * limit
    return {
        'results': rows[start:start + limit],
        'pagination': _pagination(len(rows), page, limit),
    }


def _graded(course=None):
    filters = [ExamResult.status.in_(GRADED_STATUSES)]
    if course:
        filters.append(ExamResult.course == course)
    return filters


def _course_answer_stats(db_session, course):
    row = db_session.execute(
        select(
            func.sum(ExamResult.total_questions).label('answered'),
            func.sum(ExamResult.correct_count).label('correct'),
            func.count(func.distinct(ExamResult.user_id)).label('unique_students'),
        ).where(*_graded(course))
    ).one()
    pool = db_session.execute(
        select(func.count(Question.id)).where(Question.course == course, Question.is_active.is_(True))
    ).scalar_one()

    answered, correct = int(row.answered or 0), int(row.correct or 0)
    return {
        'totalPool': pool,
        'answered': answered,
        'correct': correct,
        'wrong': answered - correct,
        'uniqueStudents': int(row.unique_students or 0),
        'successRate': percentage(correct, answered, digits=1),
    }


def results_overview(db_session, course=None):
    """Answer totals per course, and overall across the courses shown."""
    if course:
        courses = [course]
    else:
        taken = db_session.execute(select(ExamResult.course).distinct()).scalars().all()
        banked = db_session.execute(
            select(Question.course).where(Question.is_active.is_(True)).distinct()
        ).scalars().all()
        courses = sorted(set(taken) | set(banked))

    per_course = {c: _course_answer_stats(db_session, c) for c in courses}
    answered = sum(c['answered'] for c in per_course.values())
    correct = sum(c['correct'] for c in per_course.values())
    unique_students = db_session.execute(
        select(func.count(func.distinct(ExamResult.user_id))).where(*_graded(course))
    ).scalar_one()

    return {
        'overall': {
            'totalQuestions': answered,
            'correctAnswers': correct,
            'wrongAnswers': answered - correct,
            'uniqueStudents': unique_students,
            'overallScore': percentage(correct, answered, digits=1),
        },
        'courses': per_course,
    }
