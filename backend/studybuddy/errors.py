"""Domain exceptions raised by services and storage.

Controllers never build error payloads themselves; `main.py` registers one
exception handler per class below and maps it to an HTTP status.
"""

from typing import Dict, List, Optional


class StudyBuddyError(Exception):
    """Base class for errors surfaced to API clients."""
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class InvalidRequest(StudyBuddyError):
    """Client-supplied payload violates the expected shape."""
    status_code = 400
    public_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []


class NotFound(StudyBuddyError):
    """Referenced user, goal, task or reminder does not exist."""
    status_code = 404
    public_message = "Not found"


class Conflict(StudyBuddyError):
    """The write collides with an existing record (e.g. duplicate username)."""
    status_code = 409
    public_message = "Conflict"


class GenerationFailed(StudyBuddyError):
    """The study plan could not be generated; nothing was persisted."""
    status_code = 500
    public_message = "Failed to create goal and study plan"


class UnexpectedPersistenceFailure(StudyBuddyError):
    """The storage layer rejected a read or write."""
    status_code = 500
    public_message = "Unexpected persistence failure"
