"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from loguru import logger


class CoachPushException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class PushConfigurationError(CoachPushException):
    """Missing or invalid push transport credentials."""
    pass


class NotificationDataError(CoachPushException):
    """Notification data that cannot be read as a structured map."""
    pass


class SubscriptionError(CoachPushException):
    """Invalid push subscription registration."""
    pass


def handle_configuration_error(error: PushConfigurationError) -> HTTPException:
    """Handle missing push credentials."""
    logger.error(f"Push configuration error: {error.message}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Push notifications are not configured on this server."
    )


def handle_subscription_error(error: SubscriptionError) -> HTTPException:
    """Handle invalid subscription payloads."""
    logger.warning(f"Subscription error: {error.message}")
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "message": error.message,
            "details": error.details
        }
    )
