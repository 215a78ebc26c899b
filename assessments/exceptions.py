"""
Domain errors raised by the attempt engine and the late-access registry.

Every class is a DRF ``APIException`` so views can let them propagate; the
project exception handler (``cores.exceptions``) renders them as
``{"error": ..., "code": ...}``.
"""
import math

from rest_framework import status
from rest_framework.exceptions import APIException


# --- Eligibility: recoverable, user-actionable ---

class EligibilityError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "You are not eligible to start this exam."
    default_code = "not_eligible"


class ExamNotAvailable(EligibilityError):
    default_detail = "Exam is not available."
    default_code = "exam_not_available"


class AttemptLimitReached(EligibilityError):
    default_code = "attempt_limit_reached"

    def __init__(self, max_attempts):
        self.max_attempts = max_attempts
        super().__init__(f"Maximum attempts ({max_attempts}) reached")


class CooldownActive(EligibilityError):
    default_code = "cooldown_active"

    def __init__(self, remaining):
        self.remaining = remaining
        self.retry_after_seconds = math.ceil(remaining.total_seconds())
        hours = math.ceil(self.retry_after_seconds / 3600)
        unit = "hour" if hours == 1 else "hours"
        super().__init__(f"Please wait {hours} {unit} before attempting again")


# --- Authorization: fatal for the request, audited ---

class AuthorizationError(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to perform this action."
    default_code = "forbidden"


class NotAttemptOwner(AuthorizationError):
    default_detail = "Unauthorized: Not your attempt"
    default_code = "not_attempt_owner"


class NotAllowedToGenerateCode(AuthorizationError):
    default_detail = "Unauthorized: Only the exam creator or an inspector can generate late codes"
    default_code = "late_code_generation_forbidden"


class NotAllowedToManageCode(AuthorizationError):
    default_detail = "Unauthorized: You cannot manage late codes for this exam"
    default_code = "late_code_management_forbidden"


class NotAllowedToMonitorExam(AuthorizationError):
    default_detail = "Unauthorized: Only the exam creator or an inspector can monitor this exam"
    default_code = "exam_monitor_forbidden"


class InvalidResumeToken(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid resume token"
    default_code = "invalid_resume_token"


# --- Integrity: reject the operation, leave state untouched ---

class IntegrityViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state of the attempt."
    default_code = "conflict"


class AttemptNotInProgress(IntegrityViolation):
    default_detail = "Attempt is no longer in progress"
    default_code = "attempt_not_in_progress"


class AttemptAbandoned(IntegrityViolation):
    default_detail = "Maximum tab switches exceeded. Attempt has been abandoned."
    default_code = "attempt_abandoned"


class DuplicateResponse(IntegrityViolation):
    default_detail = "A response for this question was already recorded in this attempt."
    default_code = "duplicate_response"


class UnknownQuestion(IntegrityViolation):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Question does not belong to this exam."
    default_code = "unknown_question"


# --- Lookups ---

class AttemptNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Attempt not found"
    default_code = "attempt_not_found"


class ExamNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Exam not found"
    default_code = "exam_not_found"


class LateCodeNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Late code not found"
    default_code = "late_code_not_found"


# --- Late-access codes: six distinct reasons, surfaced verbatim ---

class LateCodeError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Late code cannot be used."
    default_code = "late_code_error"


class LateCodeInvalid(LateCodeError):
    default_detail = "Invalid late code"
    default_code = "late_code_invalid"


class LateCodeDeactivated(LateCodeError):
    default_detail = "Late code has been deactivated"
    default_code = "late_code_deactivated"


class LateCodeExpired(LateCodeError):
    default_detail = "Late code has expired"
    default_code = "late_code_expired"


class LateCodeExhausted(LateCodeError):
    default_detail = "Late code has no remaining usages"
    default_code = "late_code_exhausted"


class LateCodeNotYours(LateCodeError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "This late code is assigned to another user"
    default_code = "late_code_not_yours"


class LateCodeAlreadyUsed(LateCodeError):
    default_detail = "You have already used this late code"
    default_code = "late_code_already_used"
