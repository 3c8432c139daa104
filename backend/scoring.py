# backend/scoring.py
# Score arithmetic shared by grading and reporting. All rounding is half-up
# (12.5 -> 13), never Python's round-half-even.
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value, digits=0):
    """Round to `digits` decimal places, 0.5 away from zero. Returns int for digits=0."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    rounded = value.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def percentage(part, whole, digits=0):
    """part/whole as a rounded percentage; 0 when whole is 0."""
    if not whole:
        return 0 if digits == 0 else 0.0
    return round_half_up(Decimal(part) * 100 / Decimal(whole), digits)


def compute_score(correct_count, total_questions):
    """Exam score 0-100: round(correct / total * 100), 0 for an empty exam."""
    return percentage(correct_count, total_questions)


def seconds_to_minutes(seconds):
    return round_half_up(Decimal(seconds) / 60)
