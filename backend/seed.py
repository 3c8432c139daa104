# seed.py
import logging
from app import create_app, db # Import your app factory and db object
from models import User, RoleEnum, Question, DifficultyEnum, ExamTimer # Import necessary models

# Configure logging for the script
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

DEMO_USERS = [
    {'name': 'Admin', 'role': RoleEnum.ADMIN, 'course': None},
    {'name': 'Geodesy Faculty', 'role': RoleEnum.FACULTY, 'course': 'BSGE'},
    {'name': 'Demo Student (BSGE)', 'role': RoleEnum.STUDENT, 'course': 'BSGE'},
    {'name': 'Demo Student (BSABEN)', 'role': RoleEnum.STUDENT, 'course': 'BSABEN'},
]

# (course, subject, area, text, options, answer, difficulty)
DEMO_QUESTIONS = [
    ('BSGE', 'Geodesy', None, 'Which reference surface approximates mean sea level?',
     ['Ellipsoid', 'Geoid', 'Datum plane', 'Sphere'], 'B', DifficultyEnum.EASY),
    ('BSGE', 'Geodesy', None, 'WGS 84 is an example of a...',
     ['Geodetic datum', 'Map projection', 'Leveling network'], 'A', DifficultyEnum.MEDIUM),
    ('BSGE', 'Surveying', None, 'A closed traverse must satisfy which condition?',
     ['Sum of latitudes equals zero', 'All bearings are equal'], 'A', DifficultyEnum.MEDIUM),
    ('BSABEN', 'Soil Mechanics', 'Land and Water Resources', 'Darcy\'s law relates flow rate to...',
     ['Hydraulic gradient', 'Soil color', 'Air temperature', 'Crop yield'], 'A', DifficultyEnum.HARD),
    ('BSABEN', 'Irrigation', 'Land and Water Resources', 'Drip irrigation mainly reduces losses from...',
     ['Deep percolation', 'Evaporation', 'Runoff', 'All of these'], 'D', DifficultyEnum.EASY),
]

# (course, area, subject, seconds)
DEMO_TIMERS = [
    ('BSABEN', 'Land and Water Resources', None, 45 * 60),
    ('BSGE', None, 'Geodesy', 30 * 60),
]


def seed_data(app=None):
    """Seeds demo users, a small question bank and exam timers."""
    app = app or create_app() # Create an app instance to work within the app context
    with app.app_context():
        logging.info("--- Starting Database Seeding ---")
        db.create_all()

        try:
            for user_data in DEMO_USERS:
                if User.query.filter_by(name=user_data['name']).first():
                    logging.info(f"User '{user_data['name']}' already exists. Skipping creation.")
                    continue
                db.session.add(User(**user_data))
                logging.info(f"User '{user_data['name']}' ({user_data['role'].value}) created.")

            if Question.query.count() == 0:
                for course, subject, area, text, options, answer, difficulty in DEMO_QUESTIONS:
                    q = Question(course=course, subject=subject, area=area, text=text,
                                 difficulty=difficulty, category='Demo')
                    q.options = options
                    q.set_answer_key(answer)
                    db.session.add(q)
                logging.info(f"Added {len(DEMO_QUESTIONS)} demo questions.")
            else:
                logging.info("Question bank is not empty. Skipping demo questions.")

            if ExamTimer.query.count() == 0:
                for course, area, subject, seconds in DEMO_TIMERS:
                    db.session.add(ExamTimer(course=course, area=area, subject=subject, seconds=seconds))
                logging.info(f"Added {len(DEMO_TIMERS)} exam timers.")

            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logging.error(f"Error seeding database: {e}", exc_info=True)

        logging.info("--- Database Seeding Complete ---")

if __name__ == '__main__':
    seed_data()
