"""Safe Scroll - Error Types
Copyright (c) 2026 beautifulplanet
Licensed under MIT License
"""


class SafeScrollError(Exception):
    """Base class for all errors raised by the protection service."""


class ConfigurationError(SafeScrollError):
    """A configuration update was malformed and has been rejected."""


class ExtractionFailure(SafeScrollError):
    """The content source returned nothing usable or raised."""


class MitigationFailure(SafeScrollError):
    """The overlay renderer or scroll performer failed."""


class ShutdownError(SafeScrollError):
    """Timers could not be cancelled or workers could not be drained."""
