"""Error types raised by the configuration sync client"""


class ConfigSyncError(Exception):
    """Base class for every error raised by this package"""


class BootstrapUnavailable(ConfigSyncError):
    """No bootstrap file, or the configuration server could not be reached.

    Callers fall back to local-file-only mode.
    """


class SessionError(ConfigSyncError):
    """A coordination-service operation failed after its retry budget"""


class SessionExpired(SessionError):
    """The coordination-service session was lost and must be re-established"""


class DownloadFailure(ConfigSyncError):
    """A remote resource could not be downloaded completely"""

    def __init__(self, resource: str, reason: str = ""):
        self.resource = resource
        self.reason = reason
        message = f"Download failed for '{resource}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ResolutionFailure(ConfigSyncError):
    """A required placeholder has no value in the snapshot or the fallback source"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Could not resolve placeholder '{key}'")


class DeliveryFailure(ConfigSyncError):
    """A consumer rejected a resolved value"""

    def __init__(self, key: str, cause: Exception):
        self.key = key
        self.cause = cause
        super().__init__(f"Delivery of '{key}' failed: {cause}")
