"""
Failure taxonomy for the gate and the attempt lifecycle.

Every error carries a human-readable ``message`` that names the remediation,
so callers can show it to the participant or supervisor as-is.
"""


class ExamHallError(Exception):
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ============= Access gate =============

class AuthError(ExamHallError):
    default_message = "Login failed."


class InvalidCredentials(AuthError):
    default_message = "Invalid email or password."


class ProfileMissing(AuthError):
    default_message = "User profile not found. Please contact the administrator."


class NoReferencePoint(AuthError):
    default_message = "No supervisor has opened the exam network yet. Ask your supervisor to log in first."


class NetworkMismatch(AuthError):
    default_message = "Connect to the exam LAN. Your network does not match the supervisor's network."


class ApprovalPending(AuthError):
    default_message = "Supervisor account not approved yet. Please contact the system administrator."


# ============= Attempt lifecycle =============

class AttemptError(ExamHallError):
    default_message = "The exam attempt could not be processed."


class StartConflict(AttemptError):
    default_message = "You have already taken this exam."


class NotEligible(AttemptError):
    default_message = "You are not allowed to start this exam."


class AttemptNotFound(AttemptError):
    default_message = "Exam attempt not found."


class AttemptClosed(AttemptError):
    default_message = "This exam attempt has already been submitted."


class ItemNotInAssessment(AttemptError):
    default_message = "That question does not belong to this exam."


class SubmissionFailed(AttemptError):
    default_message = "Failed to submit the exam. Your answers are kept locally; try submitting again."


# ============= Collaborators =============

class StoreError(ExamHallError):
    default_message = "Could not reach the database. Please retry."


class UniqueViolation(StoreError):
    default_message = "A record with the same key already exists."


class SchemaError(StoreError):
    default_message = "The database returned a record with an unexpected shape."


class NetworkError(ExamHallError):
    default_message = "Could not determine your network address. Check your internet connection."
