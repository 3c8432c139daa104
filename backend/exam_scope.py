# backend/exam_scope.py
# Which slice of the question bank an exam covers.
#
# Topic-only courses (e.g. BSGE) pick questions by subject. Area-scoped courses
# (e.g. BSABEN) pick by area, optionally narrowed to one subject inside it.
from typing import NamedTuple, Optional

from exceptions import ValidationError


class TopicOnlyScope(NamedTuple):
    course: str
    subject: str

    @property
    def area(self):
        return None

    def topic_label(self):
        return self.subject

    def question_filters(self):
        return {'course': self.course, 'subject': self.subject}

    def timer_filters(self):
        return {'course': self.course, 'subject': self.subject, 'area': None}

    def session_fields(self):
        return {'course': self.course, 'subject': self.subject, 'area': None}


class AreaScopedScope(NamedTuple):
    course: str
    area: str
    subject: Optional[str] = None

    def topic_label(self):
        return f"{self.subject} ({self.area})" if self.subject else self.area

    def question_filters(self):
        filters = {'course': self.course, 'area': self.area}
        if self.subject:
            filters['subject'] = self.subject
        return filters

    def timer_filters(self):
        # Area exams are timed per area, whichever subject narrows them
        return {'course': self.course, 'area': self.area, 'subject': None}

    def session_fields(self):
        return {'course': self.course, 'subject': self.subject, 'area': self.area}


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_scope(course, subject=None, area=None, area_scoped_courses=frozenset()):
    """Validate raw request fields and return the matching scope variant."""
    course, subject, area = _clean(course), _clean(subject), _clean(area)
    if not course:
        raise ValidationError("Missing required parameter: course")
    if not subject and not area:
        raise ValidationError("Missing required parameters: subject or area")

    if course in area_scoped_courses:
        if not area:
            raise ValidationError(f"An area is required for {course} exams")
        return AreaScopedScope(course=course, area=area, subject=subject)

    if not subject:
        raise ValidationError(f"A subject is required for {course} exams")
    # Topic-only courses ignore any stray area value
    return TopicOnlyScope(course=course, subject=subject)
