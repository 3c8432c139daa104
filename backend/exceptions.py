"""
backend/exceptions.py
Typed failures raised by the exam engine.

Routes translate these into {"message": ...} responses with the matching
status code. Anything that is not an ExamEngineError is an internal error.
"""


class ExamEngineError(Exception):
    """Base exception for the exam engine"""
    status_code = 500

    def __init__(self, message, status_code=None, reason=None):
        self.message = message
        self.reason = reason
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self):
        data = {'message': self.message}
        if self.reason:
            data['reason'] = self.reason
        return data


class ValidationError(ExamEngineError):
    """Missing or malformed identifiers or fields; raised before any store access."""
    status_code = 400


class AuthorizationError(ExamEngineError):
    """Role not permitted or course mismatch."""
    status_code = 403


class NotFoundError(ExamEngineError):
    """User, session or result absent, or session in the wrong state."""
    status_code = 404


class ConflictError(ExamEngineError):
    """Session already graded."""
    status_code = 409
