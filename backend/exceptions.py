"""
Custom exception classes for notification transports.
"""


class NotificationDeliveryError(Exception):
    """Raised when a transport fails to hand a message over for delivery."""
    pass


class NotifierNotConfiguredError(NotificationDeliveryError):
    """Raised when the selected transport is missing required settings."""
    pass
