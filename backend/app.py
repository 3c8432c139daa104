# backend/app.py
import os
import random
from flask import Flask, request, jsonify, g
from flask_cors import CORS
from functools import wraps
import jwt
import logging

# --- Cloud SQL Connector Imports ---
import sqlalchemy
from google.cloud.sql.connector import Connector, IPTypes

# Import models and config
from models import db, RoleEnum
from config import Config # <-- Ensure Config is imported

from exceptions import ExamEngineError, ValidationError, AuthorizationError
from exam_scope import build_scope
from question_pool import available_topics
import exam_engine
import reports

# --- Helper Function for Cloud SQL Connection ---
connector = None

def getconn() -> sqlalchemy.engine.base.Connection:
    """
    Opens a connection to the Cloud SQL instance through the connector.
    Relies on credentials found by the connector (e.g., GOOGLE_APPLICATION_CREDENTIALS).
    """
    global connector
    if connector is None:
        logging.info("Initializing Cloud SQL Connector...")
        connector = Connector()

    try:
        conn = connector.connect(
            Config.INSTANCE_CONNECTION_NAME,
            "pymysql",
            user=Config.DB_USER,
            password=Config.DB_PASS,
            db=Config.DB_NAME,
            ip_type=IPTypes.PUBLIC # Or IPTypes.PRIVATE
        )
        return conn
    except Exception as e:
        logging.exception(f"Failed to connect to Cloud SQL instance '{Config.INSTANCE_CONNECTION_NAME}' as user '{Config.DB_USER}': {e}")
        raise


def _configure_database(app):
    """Cloud SQL when all DB_* settings are present, otherwise DATABASE_URL."""
    cloud_sql = [app.config.get('DB_USER'), app.config.get('DB_PASS'), app.config.get('DB_NAME'), app.config.get('INSTANCE_CONNECTION_NAME')]
    if all(cloud_sql):
        app.logger.info(f"Configuring SQLAlchemy for Cloud SQL instance: {app.config['INSTANCE_CONNECTION_NAME']}")
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
            "creator": getconn,
            "pool_size": 5,
            "max_overflow": 2,
            "pool_timeout": 30,
            "pool_recycle": 1800,
        }
        # Dummy URI needed by Flask-SQLAlchemy, but connection is handled by 'creator'
        app.config['SQLALCHEMY_DATABASE_URI'] = "mysql+pymysql://"
        return
    if any(cloud_sql):
        raise ValueError("Incomplete Cloud SQL configuration (DB_USER, DB_PASS, DB_NAME, INSTANCE_CONNECTION_NAME must all be set)")

    app.config['SQLALCHEMY_DATABASE_URI'] = app.config['DATABASE_URL']
    if not app.config['DATABASE_URL'].startswith('sqlite'):
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {"pool_pre_ping": True, "pool_timeout": 30, "pool_recycle": 1800}
    app.logger.info(f"Configuring SQLAlchemy for {app.config['DATABASE_URL'].split('://', 1)[0]} database")


def _int_field(value, name, required=False):
    """Integers from JSON bodies or query strings; bools and junk are rejected."""
    if value is None or value == '':
        if required:
            raise ValidationError(f"Missing required field: {name}")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}")


# Factory function to create the Flask application
def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # --- Configure Logging ---
    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    logging.basicConfig(level=log_level,
                        format='%(asctime)s %(levelname)s %(name)s %(threadName)s : %(message)s')
    app.logger.info(f"Flask App starting with log level {log_level}")

    _configure_database(app)
    db.init_app(app)

    # Initialize CORS
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS'],
                                "methods": ["GET", "POST", "OPTIONS"],
                                "allow_headers": ["Content-Type", "Authorization"],
                                "supports_credentials": True }})

    @app.cli.command('init-db')
    def init_db():
        """Create all tables."""
        db.create_all()
        app.logger.info("Database tables created.")

    # --- Authentication Helper Functions ---
    # Tokens are issued by the identity service with the shared SECRET_KEY.
    def token_required(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            token = None
            auth_header = request.headers.get('Authorization')
            if auth_header and auth_header.startswith('Bearer '):
                token = auth_header.split(" ")[1]
            if not token:
                app.logger.warning("Token is missing from request headers.")
                return jsonify({'message': 'Token is missing'}), 401
            try:
                data = jwt.decode(token, app.config['SECRET_KEY'], algorithms=['HS256'])
                g.current_user_id = data['user_id']
                g.current_role = data['role']
                app.logger.debug(f"Token validated for user {g.current_user_id} (Role: {g.current_role})")
            except jwt.ExpiredSignatureError:
                app.logger.info("Token has expired.")
                return jsonify({'message': 'Token has expired'}), 401
            except (jwt.InvalidTokenError, KeyError) as e:
                app.logger.warning(f"Token is invalid: {e}")
                return jsonify({'message': 'Token is invalid'}), 401
            return f(*args, **kwargs)
        return decorated

    def roles_required(*roles):
        allowed = {r.value for r in roles}
        def decorator(f):
            @wraps(f)
            @token_required
            def decorated(*args, **kwargs):
                if g.current_role not in allowed:
                    app.logger.warning(f"Action denied for user {g.current_user_id} (Role: {g.current_role}) on endpoint {request.path}")
                    return jsonify({'message': 'Unauthorized'}), 403
                return f(*args, **kwargs)
            return decorated
        return decorator

    def current_user_id():
        return _int_field(g.current_user_id, 'userId', required=True)

    def engine_error(e, context):
        app.logger.warning(f"{context} rejected ({e.status_code}): {e.message}")
        return jsonify(e.to_dict()), e.status_code

    def exam_rng():
        seed = app.config.get('EXAM_SHUFFLE_SEED')
        return random.Random(seed) if seed is not None else random.Random()

    def scope_from(source):
        return build_scope(source.get('course'), source.get('subject'), source.get('area'),
                           area_scoped_courses=app.config['AREA_SCOPED_COURSES'])

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'}), 200

    # --- Exam Routes ---
    @app.route('/api/exams/can-take', methods=['GET'])
    @token_required
    def can_take_exam():
        """Checks whether the caller may start an exam for this topic today."""
        try:
            user_id = current_user_id()
            scope = scope_from(request.args)
            return jsonify(exam_engine.check_eligibility(db.session, user_id, scope)), 200
        except ExamEngineError as e:
            return engine_error(e, f"Eligibility check for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error checking exam eligibility for user {g.current_user_id}: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/exams/available', methods=['GET'])
    @token_required
    def get_available_topics():
        """Lists the subjects (or areas) of a course that have active questions."""
        course = (request.args.get('course') or '').strip()
        try:
            if not course:
                raise ValidationError("Course is required")
            user = exam_engine.get_user(db.session, current_user_id())
            if user.is_course_bound and user.course != course:
                raise AuthorizationError("Course does not match user's enrolled course")
            area_scoped = course in app.config['AREA_SCOPED_COURSES']
            return jsonify(available_topics(db.session, course, area_scoped)), 200
        except ExamEngineError as e:
            return engine_error(e, f"Topic listing for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error listing available topics for course '{course}': {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/exams/start', methods=['POST'])
    @token_required
    def start_exam_session():
        """Creates an exam session with a shuffled, answer-free question set."""
        data = request.get_json(silent=True) or {}
        try:
            user_id = current_user_id()
            scope = scope_from(data)
            count = _int_field(data.get('questionCount'), 'questionCount')
            if count is None:
                count = app.config['EXAM_DEFAULT_QUESTION_COUNT']
            result = exam_engine.start_exam(
                db.session, user_id, scope, question_count=count, rng=exam_rng(),
                enforce_daily_limit=app.config['EXAM_ENFORCE_DAILY_LIMIT'])
            return jsonify(result), 201
        except ExamEngineError as e:
            return engine_error(e, f"Exam start for user {g.current_user_id}")
        except Exception as e:
            db.session.rollback()
            app.logger.exception(f"Unexpected error starting exam for user {g.current_user_id}: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/exams/log-violation', methods=['POST'])
    @token_required
    def log_exam_violation():
        """Records an integrity violation; the third one flags the session for auto-submit."""
        data = request.get_json(silent=True) or {}
        try:
            user_id = current_user_id()
            session_id = _int_field(data.get('examSessionId'), 'examSessionId', required=True)
            occurred_at = exam_engine.parse_timestamp(data.get('timestamp'))
            result = exam_engine.log_violation(
                db.session, session_id, user_id, data.get('violationType'), occurred_at=occurred_at,
                threshold=app.config['EXAM_VIOLATION_THRESHOLD'])
            return jsonify(result), 200
        except ExamEngineError as e:
            return engine_error(e, f"Violation log for user {g.current_user_id}")
        except Exception as e:
            db.session.rollback()
            app.logger.exception(f"Unexpected error logging violation for user {g.current_user_id}: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/exams/submit', methods=['POST'])
    @token_required
    def submit_exam_answers():
        """
        Grades a session once, stores its permanent result and returns the breakdown.
        Used for manual submit, timer expiry and violation auto-submit alike.
        """
        data = request.get_json(silent=True) or {}
        try:
            user_id = current_user_id()
            session_id = _int_field(data.get('examSessionId'), 'examSessionId', required=True)
            result = exam_engine.submit_exam(db.session, session_id, user_id, data.get('answers'))
            return jsonify(result), 200
        except ExamEngineError as e:
            return engine_error(e, f"Submission for user {g.current_user_id}")
        except Exception as e:
            db.session.rollback()
            app.logger.exception(f"Unexpected error during submission for user {g.current_user_id}: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/exams/results/<int:session_id>', methods=['GET'])
    @token_required
    def get_exam_result(session_id):
        try:
            return jsonify(exam_engine.get_result(db.session, session_id, current_user_id())), 200
        except ExamEngineError as e:
            return engine_error(e, f"Result {session_id} for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error fetching result for session {session_id}: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/exams/history', methods=['GET'])
    @token_required
    def get_exam_history():
        """Paginated exam history of the caller with aggregate statistics."""
        try:
            user_id = current_user_id()
            page = _int_field(request.args.get('page'), 'page') or 1
            limit = _int_field(request.args.get('limit'), 'limit') or app.config['HISTORY_PAGE_SIZE']
            course = (request.args.get('course') or '').strip() or None
            return jsonify(reports.exam_history(db.session, user_id, course=course, page=page, limit=limit)), 200
        except ExamEngineError as e:
            return engine_error(e, f"History for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error fetching exam history for user {g.current_user_id}: {e}")
            return jsonify({"message": "Internal server error"}), 500

    # --- Staff Reporting Routes ---
    def staff_course():
        """Faculty only ever see their own course; admins may pick one (or none)."""
        requested = (request.args.get('course') or '').strip() or None
        if g.current_role == RoleEnum.FACULTY.value:
            user = exam_engine.get_user(db.session, current_user_id())
            if not user.course:
                raise AuthorizationError("No course is assigned to this faculty account")
            return user.course
        return requested

    @app.route('/api/scores/stats', methods=['GET'])
    @roles_required(RoleEnum.ADMIN, RoleEnum.FACULTY)
    def get_score_statistics():
        try:
            course = staff_course()
            stats = reports.score_statistics(
                db.session, course=course,
                passing=app.config['SCORE_PASSING_THRESHOLD'],
                excellent=app.config['SCORE_EXCELLENT_THRESHOLD'])
            return jsonify(stats), 200
        except ExamEngineError as e:
            return engine_error(e, f"Score statistics for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error computing score statistics: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/scores', methods=['GET'])
    @roles_required(RoleEnum.ADMIN, RoleEnum.FACULTY)
    def get_student_scores():
        try:
            course = staff_course()
            page = _int_field(request.args.get('page'), 'page') or 1
            limit = _int_field(request.args.get('limit'), 'limit') or 20
            band = (request.args.get('status') or '').strip() or None
            if band and band not in ('excellent', 'good', 'needs-improvement'):
                raise ValidationError(f"Invalid status filter: '{band}'")
            result = reports.student_scores(
                db.session, course=course, page=page, limit=limit, band=band,
                search=request.args.get('search', ''),
                passing=app.config['SCORE_PASSING_THRESHOLD'],
                excellent=app.config['SCORE_EXCELLENT_THRESHOLD'])
            return jsonify(result), 200
        except ExamEngineError as e:
            return engine_error(e, f"Score table for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error building student score table: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/results', methods=['GET'])
    @roles_required(RoleEnum.ADMIN, RoleEnum.FACULTY)
    def get_answer_rows():
        """Graded answers, one row per question, with course/correctness/student filters."""
        try:
            course = staff_course()
            page = _int_field(request.args.get('page'), 'page') or 1
            limit = _int_field(request.args.get('limit'), 'limit') or 12
            raw = (request.args.get('isCorrect') or '').strip().lower()
            if raw not in ('', 'true', 'false'):
                raise ValidationError(f"Invalid isCorrect filter: '{raw}'")
            is_correct = None if not raw else raw == 'true'
            result = reports.answer_rows(
                db.session, course=course, is_correct=is_correct,
                search=request.args.get('search', ''), page=page, limit=limit)
            return jsonify(result), 200
        except ExamEngineError as e:
            return engine_error(e, f"Answer rows for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error listing answer rows: {e}")
            return jsonify({"message": "Internal server error"}), 500

    @app.route('/api/results/stats', methods=['GET'])
    @roles_required(RoleEnum.ADMIN, RoleEnum.FACULTY)
    def get_results_overview():
        try:
            return jsonify(reports.results_overview(db.session, course=staff_course())), 200
        except ExamEngineError as e:
            return engine_error(e, f"Results overview for user {g.current_user_id}")
        except Exception as e:
            app.logger.exception(f"Error computing results overview: {e}")
            return jsonify({"message": "Internal server error"}), 500

    return app

# Use the app instance created by the factory
app = create_app()


if __name__ == '__main__':
    # Use environment variable for port or default to 5001
    port = int(os.environ.get('PORT', 5001))
    # Debug should be False in production, controlled by an environment variable
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() in ('true', '1', 't')
    app.run(debug=debug_mode, host='0.0.0.0', port=port) # Listen on all interfaces if needed for containerization/external access
