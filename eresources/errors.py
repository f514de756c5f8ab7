"""
Error taxonomy for the e-resources portal.

Services raise these; the app factory turns them into JSON responses
carrying a user-facing message and, where relevant, a redirect target.
"""


class PortalError(Exception):
    """Base class for every error surfaced to the user."""

    status_code = 500
    default_message = "An unexpected error occurred."
    default_redirect = None

    def __init__(self, message=None, redirect=None):
        self.message = message or self.default_message
        self.redirect = redirect or self.default_redirect
        super().__init__(self.message)

    def to_dict(self):
        body = {"error": self.message}
        if self.redirect:
            body["redirect"] = self.redirect
        return body


class ValidationError(PortalError):
    """Missing or malformed input. No mutation has happened."""
    status_code = 400
    default_message = "Invalid input."


class NotAuthenticated(PortalError):
    status_code = 401
    default_message = "Authentication required."
    default_redirect = "/login"


class NotAuthorized(PortalError):
    """Authenticated, but wrong role or wrong ownership."""
    status_code = 403
    default_message = "You are not authorized to perform this action."


class NotFound(PortalError):
    status_code = 404
    default_message = "Not found."


class AlreadyGraded(PortalError):
    """The submission is graded; answers are frozen for the student."""
    status_code = 409
    default_message = "You have already submitted and this assignment has been graded."


class UpstreamFailure(PortalError):
    """The Supabase backend errored (network, quota, storage-level permission)."""
    status_code = 502
    default_message = "The storage service failed. Please try again."


class DuplicateDocument(UpstreamFailure):
    """A write hit a unique constraint."""
    status_code = 409
    default_message = "A record with the same key already exists."
