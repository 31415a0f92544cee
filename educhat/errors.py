"""
Typed failures raised by the chat core.

Each error carries the HTTP status it maps to so the web layer can
translate it without inspecting messages.
"""
from typing import List, Optional


class ChatError(Exception):

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRoleError(ChatError):
    """Role token from the auth context has no canonical mapping."""

    status_code = 403

    def __init__(self, role: Optional[str] = None) -> None:
        super().__init__("Invalid user type")
        self.role = role


class NotFoundError(ChatError):

    status_code = 404


class ForbiddenError(ChatError):

    status_code = 403


class ValidationFailedError(ChatError):

    status_code = 400

    def __init__(self, message: str, fields: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.fields = fields or []
