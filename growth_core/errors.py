"""Engine error taxonomy.

Every failure the engine reports to a caller is an ``EngineError`` carrying a
stable machine-readable ``code`` and the HTTP status the API layer answers
with. None of these are retried by the engine.
"""
from __future__ import annotations


class EngineError(Exception):
    code: str = "ENGINE_ERROR"
    status: int = 500

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ConfigurationNotFound(EngineError):
    code = "CONFIGURATION_NOT_FOUND"; status = 404

class NoQuestionsAvailable(EngineError):
    code = "NO_QUESTIONS_AVAILABLE"; status = 404

class SessionNotFound(EngineError):
    code = "SESSION_NOT_FOUND"; status = 404

class AssessmentNotFound(EngineError):
    code = "ASSESSMENT_NOT_FOUND"; status = 404

class Unauthorized(EngineError):
    code = "UNAUTHORIZED"; status = 403

class QuestionNotFound(EngineError):
    code = "QUESTION_NOT_FOUND"; status = 404

class InvalidAnswerFormat(EngineError):
    code = "INVALID_ANSWER_FORMAT"; status = 400

class StorageFailure(EngineError):
    code = "STORAGE_FAILURE"; status = 500

class StudentNotFound(EngineError):
    code = "STUDENT_NOT_FOUND"; status = 404

class InvalidPeriod(EngineError):
    code = "INVALID_PERIOD"; status = 400

class AssessmentCompleted(EngineError):
    code = "ASSESSMENT_COMPLETED"; status = 409

class DuplicateSubmission(EngineError):
    code = "DUPLICATE_SUBMISSION"; status = 409

class AssignmentNotFound(EngineError):
    code = "ASSIGNMENT_NOT_FOUND"; status = 404

class NotAssigned(EngineError):
    code = "NOT_ASSIGNED"; status = 403

class AlreadyCompleted(EngineError):
    code = "ALREADY_COMPLETED"; status = 400

class PastDueDate(EngineError):
    code = "PAST_DUE_DATE"; status = 400

class ResponseNotFound(EngineError):
    code = "RESPONSE_NOT_FOUND"; status = 404

class GradingUnavailable(EngineError):
    code = "GRADING_UNAVAILABLE"; status = 503
