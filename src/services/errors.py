"""
Error taxonomy shared by the webhook, sync and query services
"""

from enum import Enum
from typing import Optional

import structlog

from .github_client import GitHubAPIError

logger = structlog.get_logger()


class ErrorCategory(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMITED = "rate_limited"
    VALIDATION_ERROR = "validation_error"
    CONFLICTING_STATE = "conflicting_state"
    CONFLICTING_CONFIGURATION = "conflicting_configuration"
    UNKNOWN = "unknown"


class ServiceError(Exception):
    """Base class for errors surfaced to API callers"""

    category = ErrorCategory.UNKNOWN

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class UnauthenticatedError(ServiceError):
    category = ErrorCategory.UNAUTHENTICATED


class NotFoundError(ServiceError):
    category = ErrorCategory.NOT_FOUND


class RepositoryNotFoundError(NotFoundError):
    pass


class IssueNotFoundError(NotFoundError):
    pass


class PermissionDeniedError(ServiceError):
    category = ErrorCategory.PERMISSION_DENIED


class RateLimitedError(ServiceError):
    category = ErrorCategory.RATE_LIMITED


class ValidationError(ServiceError):
    category = ErrorCategory.VALIDATION_ERROR


class NoRepositoriesError(ValidationError):
    """Raised when an operation needs locally synced repositories"""

    def __init__(self, message: str = (
        "No repositories found in database. "
        "Please sync repositories first using POST /repositories/sync"
    )):
        super().__init__(message)


class ConflictingStateError(ServiceError):
    category = ErrorCategory.CONFLICTING_STATE


class ConflictingConfigurationError(ServiceError):
    category = ErrorCategory.CONFLICTING_CONFIGURATION


class UnknownServiceError(ServiceError):
    category = ErrorCategory.UNKNOWN


# Webhook reconciliation failures keep their own family so callers can
# catch them as one group while still matching the precise cause.
class WebhookConfigError(ServiceError):
    pass


class WebhookRepositoryNotFound(WebhookConfigError, RepositoryNotFoundError):
    pass


class WebhookPermissionDenied(WebhookConfigError, PermissionDeniedError):
    pass


class WebhookUnauthenticated(WebhookConfigError, UnauthenticatedError):
    pass


class WebhookConflictingConfiguration(WebhookConfigError, ConflictingConfigurationError):
    pass


class WebhookRateLimited(WebhookConfigError, RateLimitedError):
    pass


class WebhookUnknownError(WebhookConfigError, UnknownServiceError):
    pass


def classify_github_error(error: GitHubAPIError) -> ErrorCategory:
    """Map a GitHub API failure onto the service error taxonomy"""
    status = error.status_code
    if status == 401:
        return ErrorCategory.UNAUTHENTICATED
    if status == 403:
        # GitHub reports an exhausted rate limit as 403 as well
        if error.rate_limit_remaining == 0:
            return ErrorCategory.RATE_LIMITED
        return ErrorCategory.PERMISSION_DENIED
    if status == 404:
        return ErrorCategory.NOT_FOUND
    if status in (409, 422):
        return ErrorCategory.CONFLICTING_CONFIGURATION
    if status == 429:
        return ErrorCategory.RATE_LIMITED
    return ErrorCategory.UNKNOWN


_WEBHOOK_ERRORS = {
    ErrorCategory.NOT_FOUND: WebhookRepositoryNotFound,
    ErrorCategory.PERMISSION_DENIED: WebhookPermissionDenied,
    ErrorCategory.UNAUTHENTICATED: WebhookUnauthenticated,
    ErrorCategory.CONFLICTING_CONFIGURATION: WebhookConflictingConfiguration,
    ErrorCategory.RATE_LIMITED: WebhookRateLimited,
}

_WEBHOOK_MESSAGES = {
    ErrorCategory.NOT_FOUND: "Repository '{repo}' does not exist",
    ErrorCategory.PERMISSION_DENIED: (
        "No permission to configure webhooks for '{repo}'. Make sure the token has admin access"
    ),
    ErrorCategory.UNAUTHENTICATED: "GitHub rejected the configured token",
    ErrorCategory.CONFLICTING_CONFIGURATION: "GitHub rejected the webhook configuration for '{repo}'",
    ErrorCategory.RATE_LIMITED: "GitHub rate limit exceeded while configuring '{repo}'",
    ErrorCategory.UNKNOWN: "Failed to configure webhook for '{repo}'",
}


def webhook_error_from(error: GitHubAPIError, repo_full_name: str) -> WebhookConfigError:
    """Translate a GitHub API failure during hook reconciliation"""
    category = classify_github_error(error)
    error_class = _WEBHOOK_ERRORS.get(category, WebhookUnknownError)
    message = _WEBHOOK_MESSAGES[category].format(repo=repo_full_name)

    logger.warning(
        "Webhook reconciliation failed",
        repository=repo_full_name,
        status_code=error.status_code,
        category=category.value,
    )
    return error_class(message, cause=error)


_SERVICE_ERRORS = {
    ErrorCategory.UNAUTHENTICATED: UnauthenticatedError,
    ErrorCategory.PERMISSION_DENIED: PermissionDeniedError,
    ErrorCategory.RATE_LIMITED: RateLimitedError,
    ErrorCategory.CONFLICTING_CONFIGURATION: ConflictingConfigurationError,
    ErrorCategory.NOT_FOUND: NotFoundError,
}


def service_error_from(error: GitHubAPIError, message: str) -> ServiceError:
    """Wrap a GitHub API failure outside of hook reconciliation"""
    category = classify_github_error(error)
    error_class = _SERVICE_ERRORS.get(category, UnknownServiceError)
    return error_class(message, cause=error)
