"""Error kinds raised and reported by the replay session."""


class ReplayError(Exception):
    """Base class for all WaveReplay errors."""


class CapabilityUnavailable(ReplayError):
    """No camera or recording support on this machine (e.g. no usable codec)."""


class DeviceAcquisitionFailed(ReplayError):
    """The camera exists but could not be opened (permission denied, busy)."""


class RecorderError(ReplayError):
    """The recorder or a recorded clip failed mid-session."""


class StaleNotification(ReplayError):
    """An asynchronous completion arrived for a phase that is no longer active."""
