"""Business-rule failures raised by the review workflow.

All of these are non-retryable: the caller has to change its input or wait for
the job to move to another state. Storage faults are not part of this taxonomy;
they surface as ``RepositoryUnavailableError``.
"""

from __future__ import annotations


class ReviewWorkflowError(Exception):
    """Base review workflow error."""

    status_code = 400


class NotFoundError(ReviewWorkflowError):
    """Raised when the referenced job or review does not exist."""

    status_code = 404


class AuthorizationError(ReviewWorkflowError):
    """Raised when the actor is not a party to the job or not the review author."""

    status_code = 403


class InvalidStateError(ReviewWorkflowError):
    """Raised when the job status does not allow the requested operation."""

    status_code = 409


class DuplicateReviewError(ReviewWorkflowError):
    """Raised when the reviewer already submitted a review for the job."""

    status_code = 409


class ValidationError(ReviewWorkflowError):
    """Raised when rating, comment or category ratings are malformed."""

    status_code = 422


class EditWindowExpiredError(ReviewWorkflowError):
    """Raised when a review is modified after its edit window closed."""

    status_code = 409


class VisibilityViolationError(ReviewWorkflowError):
    """Raised when a review is modified after it became visible."""

    status_code = 409
