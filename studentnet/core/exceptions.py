"""
Custom Exceptions for Student Network
=====================================

Components raise these instead of HTTPException so the same failure reads
the same way whether it comes from a route, a service or a test. The app
registers one handler for StudentNetError that turns ``status_code`` and
``to_dict()`` into the response.

Usage:
    from studentnet.core.exceptions import ConnectionNotFoundError

    if not connection:
        raise ConnectionNotFoundError(connection_id)
"""

from typing import Optional, Any, Dict


class StudentNetError(Exception):
    """Base exception for all Student Network errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation Errors (400)
# ============================================

class ValidationError(StudentNetError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class SelfRequestError(ValidationError):
    def __init__(self):
        super().__init__("Cannot send connection request to yourself")
        self.code = "SELF_REQUEST"


class OTPExpiredError(ValidationError):
    def __init__(self):
        super().__init__("OTP has expired. Please request a new one.", field="otp")
        self.code = "OTP_EXPIRED"


class OTPMismatchError(ValidationError):
    def __init__(self, attempts_remaining: int):
        super().__init__("Invalid OTP", field="otp")
        self.code = "OTP_MISMATCH"
        self.details["attempts_remaining"] = attempts_remaining


class InvalidUploadError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, field="file")
        self.code = "INVALID_UPLOAD"


# ============================================
# Authentication Errors (401)
# ============================================

class AuthenticationError(StudentNetError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class InvalidCredentialError(AuthenticationError):
    def __init__(self):
        super().__init__("Invalid credentials")
        self.code = "INVALID_CREDENTIALS"


class InvalidTokenError(AuthenticationError):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)
        self.code = "INVALID_TOKEN"


# ============================================
# Authorization Errors (403)
# ============================================

class AuthorizationError(StudentNetError):
    """User not authorized for this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class AccountNotVerifiedError(AuthorizationError):
    def __init__(self):
        super().__init__("Please verify your email first")
        self.code = "ACCOUNT_NOT_VERIFIED"


class AccountNotActiveError(AuthorizationError):
    def __init__(self, status: str):
        super().__init__(f"Account is {status}. Please contact support.")
        self.code = "ACCOUNT_NOT_ACTIVE"
        self.details = {"account_status": status}


class AdminRequiredError(AuthorizationError):
    def __init__(self):
        super().__init__("Access denied. Admin only.")
        self.code = "ADMIN_REQUIRED"


class NotRecipientError(AuthorizationError):
    def __init__(self, action: str):
        super().__init__(f"Not authorized to {action} this request")
        self.code = "NOT_RECIPIENT"


class NotParticipantError(AuthorizationError):
    def __init__(self):
        super().__init__("Not authorized to remove this connection")
        self.code = "NOT_PARTICIPANT"


class RequestsDisabledError(AuthorizationError):
    def __init__(self):
        super().__init__("This user is not accepting connection requests")
        self.code = "REQUESTS_DISABLED"


class ProfileHiddenError(AuthorizationError):
    def __init__(self, message: str = "You do not have permission to view this profile"):
        super().__init__(message)
        self.code = "PROFILE_HIDDEN"


# ============================================
# Resource Errors (404)
# ============================================

class NotFoundError(StudentNetError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any = None, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class AccountNotFoundError(NotFoundError):
    def __init__(self, user_id: Any = None):
        super().__init__("User", user_id)


class ConnectionNotFoundError(NotFoundError):
    def __init__(self, connection_id: Any = None, message: str = "Connection not found"):
        super().__init__("Connection", connection_id, message=message)


class AchievementNotFoundError(NotFoundError):
    def __init__(self, achievement_id: Any = None):
        super().__init__("Achievement", achievement_id)


class NotificationNotFoundError(NotFoundError):
    def __init__(self, notification_id: Any = None):
        super().__init__("Notification", notification_id)


# ============================================
# Conflict Errors (409)
# ============================================

class ConflictError(StudentNetError):
    """Duplicate entity or a state transition from a non-permitted state"""

    status_code = 409

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class DuplicateIdentityError(ConflictError):
    def __init__(self):
        super().__init__(
            "User already exists with this email or roll number",
            code="DUPLICATE_IDENTITY"
        )


class AlreadyVerifiedError(ConflictError):
    def __init__(self):
        super().__init__("Email already verified. Please login.", code="ALREADY_VERIFIED")


class ConnectionExistsError(ConflictError):
    """An edge already exists for the pair; ``reason`` tells the caller which kind"""

    MESSAGES = {
        "already_connected": "You are already connected",
        "request_already_sent": "Connection request already sent",
        "reverse_pending": "This user has already sent you a connection request",
        "blocked": "Cannot send connection request",
        "rejected": "Connection request was declined",
    }

    def __init__(self, reason: str):
        super().__init__(
            self.MESSAGES.get(reason, "Connection request already exists"),
            code="CONNECTION_EXISTS",
            details={"reason": reason}
        )
        self.reason = reason


class AlreadyAcceptedError(ConflictError):
    def __init__(self):
        super().__init__("Connection request already accepted", code="ALREADY_ACCEPTED")


class NotPendingError(ConflictError):
    def __init__(self):
        super().__init__("Connection request is no longer pending", code="NOT_PENDING")


class NotAcceptedError(ConflictError):
    def __init__(self):
        super().__init__("Can only remove accepted connections", code="NOT_ACCEPTED")


# ============================================
# Rate Limit Errors (429)
# ============================================

class RateLimitError(StudentNetError):
    """Too many attempts within a window"""

    status_code = 429

    def __init__(self, message: str, code: str = "RATE_LIMITED"):
        super().__init__(message, code=code)


class OTPAttemptsExceededError(RateLimitError):
    def __init__(self):
        super().__init__(
            "Maximum OTP verification attempts exceeded. Please request a new OTP.",
            code="OTP_ATTEMPTS_EXCEEDED"
        )


class TooManyRequestsError(RateLimitError):
    def __init__(self, message: str = "Please wait before requesting a new code."):
        super().__init__(message, code="TOO_MANY_REQUESTS")


class AccountLockedError(RateLimitError):
    status_code = 423

    def __init__(self):
        super().__init__(
            "Account temporarily locked due to multiple failed login attempts. "
            "Please try again later.",
            code="ACCOUNT_LOCKED"
        )


# ============================================
# External Service Errors (502)
# ============================================

class ExternalServiceError(StudentNetError):
    """Mailer or object storage failure"""

    status_code = 502

    def __init__(self, service: str, message: str):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", details={"service": service})


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: StudentNetError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
