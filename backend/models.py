# backend/models.py
from flask_sqlalchemy import SQLAlchemy
import enum
import json # To handle JSON storage for options
from datetime import datetime, timezone # Use timezone-aware datetimes
import logging # Use logging for warnings

# Get the logger instance
log = logging.getLogger(__name__)

db = SQLAlchemy()

OPTION_LABELS = ('A', 'B', 'C', 'D')


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value):
    return as_utc(value).isoformat() if value else None


class RoleEnum(enum.Enum):
    ADMIN = 'admin'
    FACULTY = 'faculty'
    STUDENT = 'student'


class User(db.Model):
    """Identity record owned by the account service; read-only for the exam engine."""
    __tablename__ = 'user' # Explicit table name
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.Enum(RoleEnum), nullable=False, default=RoleEnum.STUDENT)
    course = db.Column(db.String(20), nullable=True) # Admins are not enrolled anywhere
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sessions = db.relationship('ExamSession', back_populates='student', lazy='dynamic')

    def __repr__(self):
        return f'<User {self.name}>'

    @property
    def is_course_bound(self):
        return self.role in (RoleEnum.STUDENT, RoleEnum.FACULTY) and self.course is not None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role.value,
            'course': self.course,
            'created_at': isoformat(self.created_at),
        }


# --- Question bank ---

class DifficultyEnum(enum.Enum):
    EASY = 'Easy'
    MEDIUM = 'Medium'
    HARD = 'Hard'


class Question(db.Model):
    __tablename__ = 'question' # Explicit table name
    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.Text, nullable=False)
    # Store options as a JSON string; position 0..3 maps to labels A..D
    options_json = db.Column(db.Text, nullable=False)
    correct_answer = db.Column(db.String(1), nullable=False)
    explanation = db.Column(db.Text, nullable=True)
    difficulty = db.Column(db.Enum(DifficultyEnum), nullable=False, default=DifficultyEnum.MEDIUM)
    category = db.Column(db.String(100), nullable=False, default='General')
    course = db.Column(db.String(20), nullable=False, index=True)
    subject = db.Column(db.String(150), nullable=False, index=True)
    area = db.Column(db.String(150), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def options(self):
        """Get options as a Python list."""
        if self.options_json is None:
            return []
        try:
            return json.loads(self.options_json)
        except (json.JSONDecodeError, TypeError) as e:
            log.warning(f"Could not decode options_json for Question ID {self.id}. Value: '{self.options_json}'. Error: {e}")
            return []

    @options.setter
    def options(self, value):
        """Set options from a Python list of 2 to 4 non-empty strings."""
        if not isinstance(value, list):
            raise ValueError("Options must be a list")
        cleaned = [str(opt).strip() for opt in value if str(opt).strip()]
        if not 2 <= len(cleaned) <= len(OPTION_LABELS):
            raise ValueError(f"A question needs between 2 and {len(OPTION_LABELS)} options, got {len(cleaned)}")
        self.options_json = json.dumps(cleaned)

    @property
    def labelled_options(self):
        """Options keyed by their answer label, e.g. {'A': '...', 'B': '...'}."""
        return dict(zip(OPTION_LABELS, self.options))

    def set_answer_key(self, label):
        label = str(label).strip().upper()
        if label not in self.labelled_options:
            raise ValueError(f"Correct answer '{label}' does not reference one of the options {list(self.labelled_options)}")
        self.correct_answer = label

    def __repr__(self):
        return f'<Question {self.id} ({self.course}/{self.subject})>'

    def to_exam_dict(self):
        """Payload handed to an examinee: never carries the answer key or explanation."""
        return {
            'id': self.id,
            'text': self.text,
            'options': self.labelled_options,
            'difficulty': self.difficulty.value if self.difficulty else None,
            'category': self.category,
            'subject': self.subject,
        }


class ExamTimer(db.Model):
    """Time limit for one exam topic: a course area, or a course subject."""
    __tablename__ = 'exam_timer'
    __table_args__ = (db.UniqueConstraint('course', 'area', 'subject', name='uq_exam_timer_topic'),)
    id = db.Column(db.Integer, primary_key=True)
    course = db.Column(db.String(20), nullable=False)
    area = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(150), nullable=True)
    seconds = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f'<ExamTimer {self.course}/{self.area or self.subject}: {self.seconds}s>'


# --- Exam sessions ---

class SessionStatusEnum(enum.Enum):
    IN_PROGRESS = 'in-progress'
    COMPLETED = 'completed'
    FLAGGED = 'flagged'
    ABANDONED = 'abandoned'


class ExamSession(db.Model):
    __tablename__ = 'exam_session'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    user_name = db.Column(db.String(120), nullable=True)
    course = db.Column(db.String(20), nullable=False)
    subject = db.Column(db.String(150), nullable=True)
    area = db.Column(db.String(150), nullable=True)

    question_ids = db.Column(db.JSON, nullable=False, default=list) # Fixed at creation
    answers = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.Enum(SessionStatusEnum), nullable=False,
                       default=SessionStatusEnum.IN_PROGRESS, index=True)
    violation_count = db.Column(db.Integer, nullable=False, default=0)
    was_flagged = db.Column(db.Boolean, nullable=False, default=False)

    score = db.Column(db.Integer, nullable=True)
    correct_count = db.Column(db.Integer, nullable=True)
    total_questions = db.Column(db.Integer, nullable=False, default=0)
    timer = db.Column(db.Integer, nullable=False, default=0) # Seconds; 0 means untimed

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    student = db.relationship('User', back_populates='sessions')
    violations = db.relationship('ExamViolation', back_populates='exam_session',
                                 order_by='ExamViolation.sequence', lazy='select',
                                 cascade="all, delete-orphan")

    def __repr__(self):
        return f'<ExamSession ID: {self.id}, User: {self.user_id}, Status: {self.status.value if self.status else None}>'

    @property
    def is_graded(self):
        return self.completed_at is not None

    @property
    def accepts_activity(self):
        """True while the attempt can still take violations or be graded once."""
        if self.is_graded:
            return False
        if self.status is SessionStatusEnum.IN_PROGRESS:
            return True
        if self.status is SessionStatusEnum.FLAGGED:
            return True # Pre-armed by the violation threshold, not graded yet
        if self.status in (SessionStatusEnum.COMPLETED, SessionStatusEnum.ABANDONED):
            return False
        raise ValueError(f"Unhandled session status {self.status!r}")

    def violation_log(self):
        return [v.to_dict() for v in self.violations]


class ExamViolation(db.Model):
    """One integrity event; rows are append-only and numbered per session."""
    __tablename__ = 'exam_violation'
    __table_args__ = (db.UniqueConstraint('exam_session_id', 'sequence', name='uq_violation_sequence'),)
    id = db.Column(db.Integer, primary_key=True)
    exam_session_id = db.Column(db.Integer, db.ForeignKey('exam_session.id', ondelete='CASCADE'), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(80), nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    exam_session = db.relationship('ExamSession', back_populates='violations')

    def to_dict(self):
        return {'type': self.type, 'timestamp': isoformat(self.occurred_at)}


class ExamResult(db.Model):
    """Permanent record of a graded attempt. Written once, never updated."""
    __tablename__ = 'exam_result'
    id = db.Column(db.Integer, primary_key=True)
    exam_session_id = db.Column(db.Integer, db.ForeignKey('exam_session.id'), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    user_name = db.Column(db.String(120), nullable=True)
    course = db.Column(db.String(20), nullable=False, index=True)
    subject = db.Column(db.String(150), nullable=True)
    area = db.Column(db.String(150), nullable=True)

    score = db.Column(db.Integer, nullable=False)
    correct_count = db.Column(db.Integer, nullable=False)
    total_questions = db.Column(db.Integer, nullable=False)
    results = db.Column(db.JSON, nullable=False, default=list) # Per-question breakdown
    violations = db.Column(db.JSON, nullable=False, default=list)
    violation_count = db.Column(db.Integer, nullable=False, default=0)
    was_flagged = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.Enum(SessionStatusEnum), nullable=False)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    time_taken = db.Column(db.Integer, nullable=False, default=0) # Seconds
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f'<ExamResult ID: {self.id}, Session: {self.exam_session_id}, Score: {self.score}>'

    def to_summary(self):
        return {
            'id': self.id,
            'examSessionId': self.exam_session_id,
            'course': self.course,
            'area': self.area,
            'subject': self.subject,
            'score': self.score,
            'percentage': self.score,
            'correctCount': self.correct_count,
            'totalQuestions': self.total_questions,
            'status': self.status.value,
            'startedAt': isoformat(self.started_at),
            'completedAt': isoformat(self.completed_at),
            'timeTaken': self.time_taken,
        }

    def to_dict(self):
        data = self.to_summary()
        data.update({
            'userId': self.user_id,
            'userName': self.user_name,
            'results': self.results,
            'violations': self.violations,
            'violationCount': self.violation_count,
            'wasFlagged': self.was_flagged,
            'createdAt': isoformat(self.created_at),
        })
        return data
