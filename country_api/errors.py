from enum import Enum
from typing import Optional


class ExternalSource(str, Enum):
    COUNTRIES = "Countries API"
    EXCHANGE_RATES = "Exchange Rates API"


class RefreshError(Exception):
    """Base class for failures of a refresh cycle."""

    status_code = 500
    error = "Internal server error"

    def details(self) -> Optional[str]:
        return None


class AlreadyRunning(RefreshError):
    status_code = 409
    error = "Refresh already in progress"

    def __init__(self, resource: str = "refresh"):
        super().__init__(f"{resource} is already running")
        self.resource = resource


class ExternalUnavailable(RefreshError):
    status_code = 503
    error = "External data source unavailable"

    def __init__(self, source: ExternalSource, reason: str = ""):
        super().__init__(f"{source.value}: {reason}" if reason else source.value)
        self.source = source
        self.reason = reason

    def details(self) -> Optional[str]:
        return f"Could not fetch data from {self.source.value}"


class StorageError(RefreshError):
    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason


class ArtifactRenderError(Exception):
    """Summary image could not be written. Logged, never returned to clients."""
