# backend/session_store.py
# Atomic state changes on exam sessions.
#
# Every transition out of an open state is a single conditional UPDATE so that
# concurrent requests for the same session (a late violation racing the final
# submit, a double-clicked submit) cannot both win. Callers own the commit.
import logging

from sqlalchemy import update, select, case, literal, true

from models import ExamSession, ExamViolation, SessionStatusEnum

log = logging.getLogger(__name__)

_sessions = ExamSession.__table__

# Statuses a not-yet-graded session may be in while it still takes activity
OPEN_STATUSES = (SessionStatusEnum.IN_PROGRESS, SessionStatusEnum.FLAGGED)


def _status(value):
    return literal(value, _sessions.c.status.type)


def _is_open():
    return (_sessions.c.completed_at.is_(None), _sessions.c.status.in_(OPEN_STATUSES))


def record_violation(db_session, session_id, user_id, violation_type, occurred_at, threshold):
    """
    Increment the violation counter and append one log row in the same
    transaction. Reaching `threshold` pre-arms the FLAGGED status.

    Returns the new count, or None when no open session of this user matched.
    """
    reaches_threshold = (_sessions.c.violation_count + 1) >= threshold
    # Status and flag are assigned before the counter: MySQL evaluates SET
    # clauses left to right against already-updated values.
    stmt = update(_sessions)\
        .where(_sessions.c.id == session_id, _sessions.c.user_id == user_id, *_is_open())\
        .ordered_values(
            (_sessions.c.status, case((reaches_threshold, _status(SessionStatusEnum.FLAGGED)), else_=_sessions.c.status)),
            (_sessions.c.was_flagged, case((reaches_threshold, true()), else_=_sessions.c.was_flagged)),
            (_sessions.c.violation_count, _sessions.c.violation_count + 1),
        )
    if db_session.execute(stmt).rowcount != 1:
        return None

    new_count = db_session.execute(
        select(_sessions.c.violation_count).where(_sessions.c.id == session_id)
    ).scalar_one()
    db_session.add(ExamViolation(exam_session_id=session_id, sequence=new_count,
                                 type=violation_type, occurred_at=occurred_at))
    db_session.flush()
    return new_count


def finalize_session(db_session, session_id, answers, score, correct_count, total_questions, completed_at):
    """
    Stamp the grading outcome onto an ungraded session. The final status is
    decided inside the UPDATE from the stored was_flagged marker.

    Returns True when this call won the transition, False if the session was
    already graded (or is no longer open).
    """
    final_status = case(
        (_sessions.c.was_flagged == true(), _status(SessionStatusEnum.FLAGGED)),
        else_=_status(SessionStatusEnum.COMPLETED),
    )
    stmt = update(_sessions)\
        .where(_sessions.c.id == session_id, *_is_open())\
        .values(status=final_status, answers=answers, score=score,
                correct_count=correct_count, total_questions=total_questions,
                completed_at=completed_at)
    won = db_session.execute(stmt).rowcount == 1
    if not won:
        log.warning(f"Conditional grading update matched no open row for session {session_id}")
    return won


def reload_session(db_session, session_id):
    """Fresh copy of the session row, overwriting anything cached in the identity map."""
    return db_session.get(ExamSession, session_id, populate_existing=True)


def violation_log(db_session, session_id):
    rows = db_session.execute(
        select(ExamViolation)
        .where(ExamViolation.exam_session_id == session_id)
        .order_by(ExamViolation.sequence)
    ).scalars().all()
    return [v.to_dict() for v in rows]
