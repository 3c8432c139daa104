from decimal import Decimal

from scoring import compute_score, percentage, round_half_up, seconds_to_minutes


def test_score_rounds_to_nearest_integer():
    assert compute_score(3, 7) == 43
    assert compute_score(7, 7) == 100
    assert compute_score(0, 7) == 0


def test_score_of_empty_exam_is_zero():
    assert compute_score(0, 0) == 0


def test_half_rounds_up_not_to_even():
    assert compute_score(1, 8) == 13  # 12.5
    assert round_half_up(2.5) == 3
    assert round_half_up(Decimal('76.45'), 1) == 76.5


def test_percentage_with_one_decimal():
    assert percentage(2, 4, digits=1) == 50.0
    assert percentage(1, 3, digits=1) == 33.3
    assert percentage(5, 0, digits=1) == 0.0


def test_seconds_to_minutes():
    assert seconds_to_minutes(89) == 1
    assert seconds_to_minutes(90) == 2
    assert seconds_to_minutes(0) == 0
