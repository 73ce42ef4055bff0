"""
Errors raised by the matching engine.

Every error carries a user-facing ``message``. None of them is retried by
the engine; callers decide what to show or retry.
"""

from typing import Any, Optional


class MatchingError(Exception):
    """Base exception for matching and assignment errors."""

    default_message = "The request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class IneligibleProvider(MatchingError):
    """Provider is inactive or lacks the specialization the order requires."""
    default_message = "This lab is not eligible for this order."


class DuplicateClaim(MatchingError):
    """A claim already exists for this (order, provider)."""
    default_message = "You have already applied to this order."


class OrderNotOpen(MatchingError):
    default_message = "This order is no longer open for applications."


class AlreadyBound(MatchingError):
    """Lost the atomic bind; ``provider_id`` is the lab that holds the order."""
    default_message = "This order was already assigned to another lab."

    def __init__(self, provider_id: Any = None, message: Optional[str] = None):
        self.provider_id = provider_id
        super().__init__(message)


class CapacityExceeded(MatchingError):
    default_message = "This lab is at full capacity."


class NotFound(MatchingError):
    default_message = "The requested record was not found."


class PermissionDenied(MatchingError):
    default_message = "You are not allowed to perform this action."


class InvalidTransition(MatchingError):
    default_message = "This status change is not allowed."


class InvalidBid(MatchingError):
    """Missing revision reason or a non-positive revised amount."""
    default_message = "The bid details are not valid."
