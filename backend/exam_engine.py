# backend/exam_engine.py
# -----------------------------------------------------------------------------
# Exam session lifecycle: eligibility, start, violation tracking, grading.
#
# Each operation is one unit of work against the database handle it is given.
# Randomness and "now" are passed in so callers (and tests) control them.
# -----------------------------------------------------------------------------
import logging
import random
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from models import (
    User, ExamSession, ExamResult, SessionStatusEnum, utcnow, as_utc, isoformat
)
from exceptions import ValidationError, AuthorizationError, NotFoundError, ConflictError
from question_pool import fetch_active_pool, load_questions, exam_timer
from scoring import compute_score, round_half_up, seconds_to_minutes
import session_store

log = logging.getLogger(__name__)

DEFAULT_QUESTION_COUNT = 50
DEFAULT_VIOLATION_THRESHOLD = 3

# Attempts that use up the day's slot for a topic
BLOCKING_STATUSES = (SessionStatusEnum.IN_PROGRESS, SessionStatusEnum.COMPLETED, SessionStatusEnum.FLAGGED)


def local_day_bounds(now):
    """[start, end) of the server-local calendar day containing `now`, as UTC datetimes."""
    local_date = as_utc(now).astimezone().date()
    # Localize each midnight on its own; the offset can change within the day
    day_start = datetime.combine(local_date, time.min).astimezone()
    day_end = datetime.combine(local_date + timedelta(days=1), time.min).astimezone()
    return day_start.astimezone(timezone.utc), day_end.astimezone(timezone.utc)


def parse_timestamp(raw):
    """Client-supplied ISO-8601 timestamp -> aware UTC datetime (None stays None)."""
    if raw is None or raw == '':
        return None
    if isinstance(raw, datetime):
        return as_utc(raw)
    try:
        return as_utc(datetime.fromisoformat(str(raw).strip().replace('Z', '+00:00')))
    except ValueError:
        raise ValidationError(f"Invalid timestamp: '{raw}'") from None


def get_user(db_session, user_id):
    user = db_session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def check_eligibility(db_session, user_id, scope, now=None):
    """
    One attempt per user, course and topic per local calendar day.
    In-progress, completed and flagged attempts count; abandoned ones do not.
    """
    now = as_utc(now) if now else utcnow()
    day_start, day_end = local_day_bounds(now)

    stmt = select(ExamSession)\
        .filter_by(user_id=user_id, **scope.question_filters())\
        .where(ExamSession.status.in_(BLOCKING_STATUSES),
               ExamSession.started_at >= day_start,
               ExamSession.started_at < day_end)\
        .order_by(ExamSession.started_at.desc())\
        .limit(1)
    existing = db_session.execute(stmt).scalars().first()

    if existing:
        return {
            'canTake': False,
            'reason': 'daily_limit',
            'message': f"You've already taken an exam for {scope.topic_label()} today. Please try again tomorrow.",
            'lastExamAt': isoformat(existing.started_at),
        }
    return {
        'canTake': True,
        'reason': 'eligible',
        'message': "You can take this exam.",
    }


def start_exam(db_session, user_id, scope, question_count=None, rng=None, now=None,
               enforce_daily_limit=True):
    """
    Create a new attempt: pick up to `question_count` active questions for the
    scope in random order and persist an in-progress session pointing at them,
    together with the topic's time limit in seconds (0 when untimed).
    The returned questions never include the answer key or explanation.
    """
    if question_count is None:
        question_count = DEFAULT_QUESTION_COUNT
    if question_count < 1:
        raise ValidationError("questionCount must be a positive integer")
    now = as_utc(now) if now else utcnow()
    rng = rng or random.Random()

    user = get_user(db_session, user_id)
    if user.is_course_bound and user.course != scope.course:
        log.warning(f"User {user_id} (course {user.course}) tried to start a {scope.course} exam")
        raise AuthorizationError("Course does not match user's enrolled course")

    if enforce_daily_limit:
        eligibility = check_eligibility(db_session, user_id, scope, now=now)
        if not eligibility['canTake']:
            raise AuthorizationError(eligibility['message'], reason=eligibility['reason'])

    pool = fetch_active_pool(db_session, scope)
    if not pool:
        raise NotFoundError("No questions available for this exam")

    selected = list(pool)
    rng.shuffle(selected)
    selected = selected[:min(question_count, len(selected))]
    timer = exam_timer(db_session, scope)

    exam = ExamSession(
        user_id=user.id,
        user_name=user.name,
        question_ids=[q.id for q in selected],
        answers={},
        status=SessionStatusEnum.IN_PROGRESS,
        violation_count=0,
        was_flagged=False,
        total_questions=len(selected),
        timer=timer,
        started_at=now,
        **scope.session_fields()
    )
    db_session.add(exam)
    db_session.commit()
    log.info(f"Exam session {exam.id} started for user {user.id}: {scope.topic_label()} "
             f"[{scope.course}], {len(selected)} of {len(pool)} questions")

    response = {
        'examSessionId': exam.id,
        'questions': [q.to_exam_dict() for q in selected],
        'totalQuestions': len(selected),
        'course': scope.course,
        'startedAt': isoformat(now),
        'timer': timer,
    }
    if scope.subject:
        response['subject'] = scope.subject
    if scope.area:
        response['area'] = scope.area
    return response


def log_violation(db_session, session_id, user_id, violation_type, occurred_at=None,
                  threshold=DEFAULT_VIOLATION_THRESHOLD):
    """
    Append one integrity violation to an open session of this user.
    At `threshold` violations the session is pre-armed as flagged; the caller
    is told to auto-submit but no grading happens here.
    """
    violation_type = str(violation_type or '').strip()
    if not violation_type:
        raise ValidationError("Missing required field: violationType")
    occurred_at = as_utc(occurred_at) if occurred_at else utcnow()

    new_count = session_store.record_violation(
        db_session, session_id, user_id, violation_type, occurred_at, threshold)
    if new_count is None:
        db_session.rollback()
        raise NotFoundError("Exam session not found or already completed")
    db_session.commit()

    should_auto_submit = new_count >= threshold
    if should_auto_submit:
        log.warning(f"Exam session {session_id} (user {user_id}) flagged: {new_count} violations, latest '{violation_type}'")
    else:
        log.info(f"Violation '{violation_type}' recorded on exam session {session_id} ({new_count}/{threshold})")

    return {
        'success': True,
        'violationCount': new_count,
        'shouldAutoSubmit': should_auto_submit,
        'message': ("Too many violations detected. Exam will be auto-submitted."
                    if should_auto_submit else f"Violation logged. Warning {new_count}/{threshold}"),
    }


def _normalize_answers(answers):
    if answers is None:
        return {}
    if not isinstance(answers, dict):
        raise ValidationError("'answers' must be an object mapping question ids to answer labels")
    normalized = {}
    for qid, label in answers.items():
        if label is None or str(label).strip() == '':
            continue
        normalized[str(qid)] = str(label).strip().upper()
    return normalized


def grade_questions(questions, answers):
    """Per-question breakdown and correct count. Unanswered questions are wrong."""
    correct_count = 0
    breakdown = []
    for q in questions:
        user_answer = answers.get(str(q.id))
        is_correct = user_answer is not None and user_answer == q.correct_answer
        if is_correct:
            correct_count += 1
        breakdown.append({
            'questionId': q.id,
            'questionText': q.text,
            'options': q.labelled_options,
            'userAnswer': user_answer,
            'correctAnswer': q.correct_answer,
            'isCorrect': is_correct,
            'difficulty': q.difficulty.value if q.difficulty else None,
            'category': q.category,
            'subject': q.subject,
            'explanation': q.explanation,
        })
    return breakdown, correct_count


def submit_exam(db_session, session_id, user_id, answers, now=None):
    """
    Grade an attempt exactly once and write its permanent ExamResult.

    Works for manual submit, timer expiry and violation auto-submit, so the
    answer map may be partial or empty.
    """
    answers = _normalize_answers(answers)
    completed_at = as_utc(now) if now else utcnow()

    exam = db_session.get(ExamSession, session_id)
    if not exam or exam.user_id != user_id:
        raise NotFoundError("Exam session not found")
    if not exam.accepts_activity:
        log.warning(f"Rejected re-submission of exam session {session_id} (status {exam.status.value})")
        raise ConflictError("Exam already submitted")

    # Grade against the questions fixed at start, not a fresh pool query
    questions = load_questions(db_session, exam.question_ids)
    breakdown, correct_count = grade_questions(questions, answers)
    total = len(questions)
    score = compute_score(correct_count, total)
    started_at = as_utc(exam.started_at)
    time_taken = max(0, round_half_up((completed_at - started_at).total_seconds()))

    if not session_store.finalize_session(db_session, session_id, answers, score,
                                          correct_count, total, completed_at):
        db_session.rollback()
        raise ConflictError("Exam already submitted")

    exam = session_store.reload_session(db_session, session_id)
    violations = session_store.violation_log(db_session, session_id)
    result = ExamResult(
        exam_session_id=exam.id,
        user_id=exam.user_id,
        user_name=exam.user_name,
        course=exam.course,
        subject=exam.subject,
        area=exam.area,
        score=score,
        correct_count=correct_count,
        total_questions=total,
        results=breakdown,
        violations=violations,
        violation_count=exam.violation_count,
        was_flagged=exam.was_flagged,
        status=exam.status,
        started_at=started_at,
        completed_at=completed_at,
        time_taken=time_taken,
        created_at=completed_at,
    )
    db_session.add(result)
    try:
        db_session.commit()
    except IntegrityError:
        db_session.rollback()
        log.warning(f"Duplicate result insert for exam session {session_id}; keeping the first grading")
        raise ConflictError("Exam already submitted")

    log.info(f"Exam session {session_id} graded for user {user_id}: {score}% "
             f"({correct_count}/{total}), status {result.status.value}, {len(violations)} violations")

    return {
        'examSessionId': exam.id,
        'score': score,
        'correctCount': correct_count,
        'totalQuestions': total,
        'percentage': score,
        'results': breakdown,
        'completedAt': isoformat(completed_at),
        'timeTaken': seconds_to_minutes(time_taken), # Minutes for display
        'violations': violations,
        'violationCount': exam.violation_count,
        'wasFlagged': exam.was_flagged,
        'status': result.status.value,
    }


def get_result(db_session, session_id, user_id):
    result = db_session.execute(
        select(ExamResult).filter_by(exam_session_id=session_id, user_id=user_id)
    ).scalars().first()
    if not result:
        raise NotFoundError("Exam result not found")
    return result.to_dict()
