"""
ErrorClassifier - Maps transport and HTTP failures to a small error taxonomy.

Understands RFC 7807 problem details, the API's response envelope
({isSuccess, message, errors, correlationId}) and ModelState-style
validation maps. Every classification yields a display message, the
correlation id, and whether the failure is retryable or ends the session.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class ErrorCategory(str, Enum):
    """Error categories understood by callers."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business-rule"
    INFRASTRUCTURE = "infrastructure"
    SYSTEM = "system"


RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
LOGOUT_CODES = ("TOKEN_EXPIRED", "INVALID_TOKEN", "AUTH_REQUIRED")
GENERIC_TITLE = "An error occurred"

STATUS_CATEGORIES = {
    400: ErrorCategory.VALIDATION,
    401: ErrorCategory.AUTHENTICATION,
    403: ErrorCategory.AUTHORIZATION,
    409: ErrorCategory.BUSINESS_RULE,
    422: ErrorCategory.VALIDATION,
}

# Matched as substrings of the problem-details `type` URI
TYPE_CATEGORIES = (
    ("validation", ErrorCategory.VALIDATION),
    ("authentication", ErrorCategory.AUTHENTICATION),
    ("authorization", ErrorCategory.AUTHORIZATION),
    ("business", ErrorCategory.BUSINESS_RULE),
    ("infrastructure", ErrorCategory.INFRASTRUCTURE),
)

CODE_CATEGORIES = (
    ("VALIDATION", ErrorCategory.VALIDATION),
    ("AUTH", ErrorCategory.AUTHENTICATION),
    ("PERMISSION", ErrorCategory.AUTHORIZATION),
    ("BUSINESS", ErrorCategory.BUSINESS_RULE),
)

STATUS_MESSAGES = {
    400: "The request was invalid. Please check your input.",
    401: "Authentication required. Please log in again.",
    403: "Access denied. You don't have permission for this action.",
    404: "The requested resource was not found.",
    409: "A conflict occurred. The resource may have been modified.",
    422: "The provided data is invalid.",
    500: "A server error occurred. Please try again later.",
    502: "Service temporarily unavailable. Please try again.",
    503: "Service unavailable. Please try again later.",
}

CATEGORY_MESSAGES = {
    ErrorCategory.VALIDATION: "The provided data is invalid.",
    ErrorCategory.AUTHENTICATION: "Authentication required. Please log in again.",
    ErrorCategory.AUTHORIZATION: "Access denied. You don't have permission for this action.",
    ErrorCategory.BUSINESS_RULE: "The request violates a business rule.",
    ErrorCategory.INFRASTRUCTURE: "Unable to reach the server. Please try again later.",
    ErrorCategory.SYSTEM: "An unexpected error occurred.",
}

CATEGORY_TITLES = {
    ErrorCategory.VALIDATION: "Validation Error",
    ErrorCategory.AUTHENTICATION: "Authentication Required",
    ErrorCategory.AUTHORIZATION: "Access Denied",
    ErrorCategory.BUSINESS_RULE: "Business Rule Violation",
    ErrorCategory.INFRASTRUCTURE: "Service Unavailable",
    ErrorCategory.SYSTEM: "System Error",
}


@dataclass
class FieldValidationError:
    """Validation messages attached to a single input field."""

    field: str
    messages: list[str]


@dataclass
class ClassifiedError:
    """A failure reduced to what callers need to display and react to it."""

    category: ErrorCategory
    message: str
    correlation_id: str | None = None
    retryable: bool = False
    should_logout: bool = False
    status: int | None = None
    title: str | None = None
    details: str | None = None
    code: str | None = None
    validation_errors: list[FieldValidationError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "category": self.category.value,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "retryable": self.retryable,
            "should_logout": self.should_logout,
            "status": self.status,
            "title": self.title,
            "details": self.details,
            "code": self.code,
            "validation_errors": [
                {"field": ve.field, "messages": ve.messages}
                for ve in self.validation_errors
            ],
        }


class ErrorClassifier:
    """
    Classifies failed calls.

    Usage:
        classifier = ErrorClassifier()

        # HTTP error response
        error = classifier.classify(
            status=response.status_code,
            body=response.json(),
            headers=response.headers,
        )

        # No response at all
        error = classifier.classify_transport_failure(exc, correlation_id)
    """

    def classify(
        self,
        status: int | None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> ClassifiedError:
        """Classify an HTTP failure from its status, parsed body and headers."""
        data = body if isinstance(body, dict) else {}
        category = self.categorize(status, data)
        validation_errors = self.extract_validation_errors(data)

        title = data.get("title") if isinstance(data.get("title"), str) else None
        detail = data.get("detail") if isinstance(data.get("detail"), str) else None
        code = data.get("code") if isinstance(data.get("code"), str) else None

        return ClassifiedError(
            category=category,
            message=self.extract_message(status, data, category, validation_errors),
            correlation_id=self.extract_correlation_id(data, headers, correlation_id),
            retryable=self.is_retryable(status),
            should_logout=self.should_logout(status, data),
            status=status,
            title=title or self.category_title(category),
            details=detail,
            code=code,
            validation_errors=validation_errors,
        )

    def classify_transport_failure(
        self,
        error: BaseException,
        correlation_id: str | None = None,
        retryable: bool = True,
    ) -> ClassifiedError:
        """Classify a failure where no response was received."""
        category = ErrorCategory.INFRASTRUCTURE
        return ClassifiedError(
            category=category,
            message=CATEGORY_MESSAGES[category],
            correlation_id=correlation_id,
            retryable=retryable,
            should_logout=False,
            status=None,
            title=self.category_title(category),
            details=str(error) or type(error).__name__,
        )

    def categorize(self, status: int | None, data: Mapping[str, Any]) -> ErrorCategory:
        """Pick a category: explicit type/code fields first, then HTTP status."""
        error_type = data.get("type")
        if isinstance(error_type, str):
            lowered = error_type.lower()
            for marker, category in TYPE_CATEGORIES:
                if marker in lowered:
                    return category

        code = data.get("code")
        if isinstance(code, str):
            upper = code.upper()
            for marker, category in CODE_CATEGORIES:
                if marker in upper:
                    return category

        if status is None:
            return ErrorCategory.INFRASTRUCTURE
        if status in STATUS_CATEGORIES:
            return STATUS_CATEGORIES[status]
        if 500 <= status < 600:
            return ErrorCategory.INFRASTRUCTURE
        return ErrorCategory.SYSTEM

    def extract_message(
        self,
        status: int | None,
        data: Mapping[str, Any],
        category: ErrorCategory,
        validation_errors: list[FieldValidationError] | None = None,
    ) -> str:
        """Pick the most specific human-readable message available."""
        detail = data.get("detail")
        if isinstance(detail, str) and detail:
            return detail

        title = data.get("title")
        if isinstance(title, str) and title and title != GENERIC_TITLE:
            return title

        message = data.get("message")
        if isinstance(message, str) and message:
            return message

        errors = data.get("errors")
        if isinstance(errors, list):
            joined = ", ".join(str(e) for e in errors if e)
            if joined:
                return joined

        if validation_errors is None:
            validation_errors = self.extract_validation_errors(data)
        if validation_errors:
            return ", ".join(m for ve in validation_errors for m in ve.messages)

        if status in STATUS_MESSAGES:
            return STATUS_MESSAGES[status]
        return CATEGORY_MESSAGES[category]

    def extract_validation_errors(
        self, data: Mapping[str, Any]
    ) -> list[FieldValidationError]:
        """Collect per-field messages from `validationErrors` or a ModelState map."""
        result: list[FieldValidationError] = []

        for source in (data.get("validationErrors"), data.get("errors")):
            if not isinstance(source, dict):
                continue
            for field_name, messages in source.items():
                if isinstance(messages, list):
                    result.append(
                        FieldValidationError(
                            field=str(field_name), messages=[str(m) for m in messages]
                        )
                    )
                elif isinstance(messages, str):
                    result.append(
                        FieldValidationError(field=str(field_name), messages=[messages])
                    )

        return result

    def extract_correlation_id(
        self,
        data: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
        fallback: str | None = None,
    ) -> str | None:
        """Server-supplied correlation id wins over the one we sent."""
        body_id = data.get("correlationId")
        if isinstance(body_id, str) and body_id:
            return body_id
        if headers is not None:
            header_id = headers.get("x-correlation-id")
            if header_id:
                return header_id
        return fallback

    @staticmethod
    def is_retryable(status: int | None) -> bool:
        if status is None:
            return True
        return status in RETRYABLE_STATUSES

    @staticmethod
    def should_logout(status: int | None, data: Mapping[str, Any]) -> bool:
        if status == 401:
            return True
        code = data.get("code")
        if isinstance(code, str):
            upper = code.upper()
            return any(marker in upper for marker in LOGOUT_CODES)
        return False

    @staticmethod
    def category_title(category: ErrorCategory) -> str:
        return CATEGORY_TITLES.get(category, "Error")

    @staticmethod
    def format_validation_errors(validation_errors: list[FieldValidationError]) -> str:
        """One `field: msg, msg` line per field."""
        return "\n".join(
            f"{ve.field}: {', '.join(ve.messages)}" for ve in validation_errors
        )

    def extract_debug_info(
        self,
        classified: ClassifiedError,
        method: str | None = None,
        url: str | None = None,
        body: Any = None,
    ) -> dict[str, Any]:
        """Developer-facing details for logs."""
        data = body if isinstance(body, dict) else {}
        return {
            "correlation_id": classified.correlation_id,
            "timestamp": data.get("timestamp")
            or datetime.now(timezone.utc).isoformat(),
            "status": classified.status,
            "category": classified.category.value,
            "method": method.upper() if method else None,
            "url": url,
            "type": data.get("type"),
            "code": classified.code,
            "instance": data.get("instance"),
            "extensions": data.get("extensions"),
        }
