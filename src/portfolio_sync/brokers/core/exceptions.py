"""Error taxonomy shared by the vault, broker clients and the sync orchestrator."""


class SyncError(Exception):
    """Base class for every failure a sync can surface to the user."""

    user_message = "Sync failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


class ConfigurationError(SyncError):
    """Process configuration is missing or invalid (e.g. no encryption key). Not retryable."""

    user_message = "Server configuration error"


class AuthenticationError(SyncError):
    """Stored credentials cannot be decrypted or were rejected by the broker."""

    user_message = "Credentials could not be verified, please reconfigure them"


class RateLimitedError(SyncError):
    """The broker is throttling requests. Callers wait for a later run instead of retrying."""

    user_message = "The broker is limiting requests, please try again in a few minutes"


class ProtocolError(SyncError):
    """Unexpected response shape or content from a required endpoint."""

    user_message = "Unexpected response from the broker"

    def __init__(
        self,
        message: str | None = None,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class SyncTimeoutError(SyncError, TimeoutError):
    """A report never became ready within the polling budget."""

    user_message = (
        "The broker took too long to generate the report. "
        "Large accounts may need more time, please try again in a few minutes"
    )


class SyncNotAllowedError(SyncError):
    """An on-demand sync was refused by policy (e.g. only the first manual sync is allowed)."""

    user_message = "Manual sync is not available, positions are updated automatically every day"


class CredentialsNotFoundError(SyncError):
    """The user has not configured credentials for the broker."""

    def __init__(self, broker: str) -> None:
        super().__init__(f"No {broker} config found. Please configure {broker} first.")
        self.broker = broker
