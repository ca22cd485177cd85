"""Exceptions raised by the tone modem."""


class ToneLinkError(Exception):
    """Base class for modem errors."""


class CaptureDeviceError(ToneLinkError):
    """The capture device could not be opened. Listening must be retried explicitly."""


class UnknownProtocolError(ToneLinkError, KeyError):
    """No protocol is registered under the requested id."""

    def __str__(self):
        return f"Unknown protocol: {self.args[0]!r}" if self.args else "Unknown protocol"


class ProtocolConfigError(ToneLinkError, ValueError):
    """A protocol or custom tone configuration breaks a table invariant."""
