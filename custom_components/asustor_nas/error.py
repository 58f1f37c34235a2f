"""Custom exceptions for ASUSTOR NAS integration."""


class AsustorError(Exception):
    """Base exception for ASUSTOR NAS integration."""


class AsustorLookupError(AsustorError):
    """Exception raised when the EZ-Connect lookup fails."""


class InvalidCloudIdError(AsustorLookupError):
    """Exception raised when the cloud id is not registered."""


class LookupNetworkError(AsustorLookupError):
    """Exception raised when the lookup service cannot be reached."""


class LookupParseError(AsustorLookupError):
    """Exception raised when the lookup document has no usable payload."""


class RaceError(AsustorError):
    """Exception raised when no candidate address wins the race."""


class RaceBlockedError(RaceError):
    """Exception raised when candidates answered only with 403."""


class NoneReachableError(RaceError):
    """Exception raised when no candidate address is reachable."""


class ResolveError(AsustorError):
    """Exception raised when no working address can be resolved."""


class AddressBlockedError(ResolveError):
    """Exception raised when ADM Defender denies this system's address."""


class AddressUnreachableError(ResolveError):
    """Exception raised when the NAS cannot be reached."""


class AsustorLoginError(AsustorError):
    """Exception raised when login fails."""


class InvalidCredentialsError(AsustorLoginError):
    """Exception raised when the NAS rejects the username or password."""


class LoginProtocolError(AsustorLoginError):
    """Exception raised when the login response is not understood."""


class LoginBlockedError(AsustorLoginError):
    """Exception raised when the login endpoint answers with 403."""


class LoginNetworkError(AsustorLoginError):
    """Exception raised when the login request cannot be sent."""


class AsustorSessionError(AsustorError):
    """Exception raised when an authenticated call fails on the session."""


class SessionExpiredError(AsustorSessionError):
    """Exception raised when the NAS reports an invalid session."""

    def __init__(self, error_code: int) -> None:
        """Initialize with the ADM error code."""
        super().__init__(f"Session rejected by NAS (error_code={error_code})")
        self.error_code = error_code


class TerminalAuthError(AsustorSessionError):
    """Exception raised when re-login after session expiry did not help."""


class AsustorApiError(AsustorError):
    """Exception raised when an API call returns an unusable response."""


class DuplicateDeviceError(AsustorError):
    """Exception raised when a NAS is already registered."""
