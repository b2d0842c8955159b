"""Errors raised by the weighing pipeline."""


class ScaleError(Exception):
    """Base class for weighing pipeline failures."""

    retryable = False


class PlatformUnsupportedError(ScaleError):
    """Host has no usable Bluetooth LE transport."""


class UserCancelledError(ScaleError):
    """Operator dismissed the device chooser."""

    retryable = True


class ScaleConnectionError(ScaleError, ConnectionError):
    """Connecting to the selected scale failed."""

    retryable = True


class ServiceNotFoundError(ScaleError):
    """Device exposes neither the Weight Scale nor the Body Composition service."""


class SubscriptionActiveError(ScaleError):
    """A session already has a running notification subscription."""


class PersistenceError(ScaleError):
    """Reading from or writing to the measurement store failed."""
