"""Exception hierarchy for pastoralist."""


class PastoralistError(Exception):
    """Base class for every error raised by pastoralist."""

    pass


class ConfigurationError(PastoralistError):
    """Raised for usage errors detected at construction time."""

    pass


class ProviderError(PastoralistError):
    """A provider could not fetch alerts (transport failure, bad output).

    Providers only raise this in strict mode; otherwise the failure is
    logged and the provider contributes zero alerts.
    """

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(
            f"{provider} security check failed. Reason: {reason}. Failing due to --strict mode."
        )


class ProviderUnavailableError(PastoralistError):
    """The provider's CLI is missing or it has no credentials."""

    pass


class SecurityProviderPermissionError(PastoralistError):
    """The provider rejected the request for lack of permissions."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(
            f"{provider} denied access to security alerts: {message}. "
            "Check that the token has the security_events scope and that alerts are enabled."
        )


class InstallError(PastoralistError):
    """Installing a provider CLI globally failed."""

    pass


class AutoFixError(PastoralistError):
    """Writing overrides into the manifest failed."""

    pass


class RollbackError(PastoralistError):
    """Restoring a manifest from its backup failed."""

    pass
