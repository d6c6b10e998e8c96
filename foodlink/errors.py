"""Domain errors raised by the services; main.py maps them to HTTP responses."""
from fastapi import status


class FoodLinkError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(FoodLinkError):
    """Missing or malformed listing fields, missing coordinates."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(FoodLinkError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(FoodLinkError):
    """Duplicate pending request, or a lost race on accept."""
    status_code = status.HTTP_409_CONFLICT


class InvalidStateTransition(FoodLinkError):
    status_code = status.HTTP_409_CONFLICT


class NotPermitted(InvalidStateTransition):
    """The viewer's role or identity does not allow the action (e.g. edit by non-owner)."""
    status_code = status.HTTP_403_FORBIDDEN


class StoreUnavailable(FoodLinkError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
