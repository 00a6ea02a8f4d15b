from typing import Optional


class ApiError(Exception):
    """Base class for failures that map straight onto a JSON error response."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_payload(self):
        return {"success": False, "message": self.message}


class DuplicateUser(ApiError):
    status_code = 400
    message = "User already exists"


class InvalidCredentials(ApiError):
    status_code = 401
    message = "Invalid email or password"


class InvalidIdentifier(ApiError):
    status_code = 400

    def __init__(self, resource: str = "record"):
        super().__init__(f"Invalid {resource} ID")
        self.resource = resource


class NotFound(ApiError):
    status_code = 404

    def __init__(self, resource: str = "record"):
        super().__init__(f"{resource.capitalize()} not found")
        self.resource = resource


class InvalidQuery(ApiError):
    status_code = 400
    message = "Invalid query parameter"


class MissingFields(ApiError):
    status_code = 400

    def __init__(self, *fields: str):
        super().__init__(f"{' and '.join(fields)} are required.")
        self.fields = fields


class TransientError(ApiError):
    # reason stays internal; clients only ever see the generic message
    status_code = 503
    message = "Too many requests, try after reloading"

    def __init__(self, reason: str = "unknown"):
        super().__init__()
        self.reason = reason


class DuplicateRecord(Exception):
    """Raised by the store when an insert trips a unique index."""

    def __init__(self, collection: str, details=None):
        super().__init__(f"Duplicate key in {collection}")
        self.collection = collection
        self.details = details or {}


class InvalidPassword(ApiError):
    status_code = 400
    message = "Password must be at most 72 bytes"
