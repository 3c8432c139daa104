import pytest

from exam_scope import build_scope, TopicOnlyScope, AreaScopedScope
from exceptions import ValidationError

AREA_COURSES = frozenset({'BSABEN'})


def test_topic_only_course_keys_on_subject():
    scope = build_scope('BSGE', subject=' Geodesy ', area_scoped_courses=AREA_COURSES)
    assert scope == TopicOnlyScope(course='BSGE', subject='Geodesy')
    assert scope.question_filters() == {'course': 'BSGE', 'subject': 'Geodesy'}
    assert scope.area is None


def test_topic_only_course_ignores_area():
    scope = build_scope('BSGE', subject='Geodesy', area='Ignored', area_scoped_courses=AREA_COURSES)
    assert isinstance(scope, TopicOnlyScope)
    assert scope.session_fields()['area'] is None


def test_area_scoped_course_requires_area():
    with pytest.raises(ValidationError):
        build_scope('BSABEN', subject='Irrigation', area_scoped_courses=AREA_COURSES)


def test_area_scoped_course_with_optional_subject():
    scope = build_scope('BSABEN', area='Land and Water Resources', area_scoped_courses=AREA_COURSES)
    assert scope == AreaScopedScope(course='BSABEN', area='Land and Water Resources')
    assert scope.question_filters() == {'course': 'BSABEN', 'area': 'Land and Water Resources'}

    narrowed = build_scope('BSABEN', subject='Irrigation', area='Land and Water Resources',
                           area_scoped_courses=AREA_COURSES)
    assert narrowed.question_filters()['subject'] == 'Irrigation'
    assert narrowed.topic_label() == 'Irrigation (Land and Water Resources)'


@pytest.mark.parametrize('course, subject, area', [
    (None, 'Geodesy', None),
    ('BSGE', None, None),
    ('BSGE', '  ', ''),
    ('BSGE', None, 'Some Area'),
])
def test_missing_fields_are_rejected(course, subject, area):
    with pytest.raises(ValidationError) as exc:
        build_scope(course, subject, area, area_scoped_courses=AREA_COURSES)
    assert exc.value.status_code == 400
