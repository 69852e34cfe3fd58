"""
Error kinds raised by the route handlers.

Each carries the HTTP status it maps to; ``main.py`` turns them into
``{"success": false, "message": ...}`` responses.
"""


class APIError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error", status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(APIError):
    status_code = 400


class ConflictError(ValidationError):
    """Something already exists: an email, a review, a wishlist entry."""


class AuthenticationError(APIError):
    status_code = 401


class AuthorizationError(APIError):
    status_code = 403


class PendingApprovalError(AuthorizationError):
    def __init__(self):
        super().__init__("Your admin account is pending approval. Please contact a super administrator.")


class NotFoundError(APIError):
    status_code = 404

    def __init__(self, entity: str = "Resource"):
        super().__init__(f"{entity} not found")
