"""
Synpack Error Taxonomy

Setup errors abort the run before any probe is sent.
Transmission errors abort the run but still allow the statistics
gathered so far to be reported.

Timeouts, unrelated frames and cancellation are not errors; they are
absorbed by the probe controller.
"""


class SynpackError(Exception):
    """Base class for all fatal probe engine errors."""


class SetupError(SynpackError):
    pass


class ResolutionError(SetupError):
    pass


class InterfaceError(SetupError):
    pass


class PermissionDenied(SetupError):
    """Raw socket creation requires elevated privileges (root / CAP_NET_RAW)."""


class ResourceUnavailable(SetupError):
    pass


class AddressInUse(SetupError):
    pass


class PortExhausted(SetupError):
    pass


class TransmissionError(SynpackError):
    pass


class SendFailed(TransmissionError):
    pass
