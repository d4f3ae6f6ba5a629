from fastapi import status

INVALID_CREDENTIAL = "auth/invalid-credential"
INVALID_EMAIL = "auth/invalid-email"
WEAK_PASSWORD = "auth/weak-password"
EMAIL_IN_USE = "auth/email-already-in-use"
INVALID_TOKEN = "auth/invalid-token"
MISSING_CREDENTIALS = "auth/missing-credentials"
POPUP_BLOCKED = "auth/popup-blocked"
POPUP_CLOSED = "auth/popup-closed-by-user"
OPERATION_NOT_SUPPORTED = "auth/operation-not-supported-in-this-environment"
UNAUTHORIZED_DOMAIN = "auth/unauthorized-domain"
NO_AUTH_EVENT = "auth/no-auth-event"
PROVIDER_NOT_CONFIGURED = "auth/operation-not-allowed"
PROVIDER_ERROR = "auth/internal-error"

_STATUS = {
    INVALID_CREDENTIAL: status.HTTP_401_UNAUTHORIZED,
    INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    MISSING_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    EMAIL_IN_USE: status.HTTP_409_CONFLICT,
    INVALID_EMAIL: 422,
    WEAK_PASSWORD: 422,
    UNAUTHORIZED_DOMAIN: status.HTTP_403_FORBIDDEN,
    PROVIDER_NOT_CONFIGURED: status.HTTP_501_NOT_IMPLEMENTED,
    PROVIDER_ERROR: status.HTTP_502_BAD_GATEWAY,
}

# codes that get their own wording instead of "Code: ... Message: ..."
_FRIENDLY = {
    POPUP_CLOSED: "Google sign-in canceled. The popup was closed before completing authentication. Please try again.",
    UNAUTHORIZED_DOMAIN: "Domain not authorized. Add this domain to the authorized domains list and try again.",
    INVALID_CREDENTIAL: "The supplied credentials are invalid.",
    EMAIL_IN_USE: "An account with this email already exists.",
}


class AuthError(Exception):
    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code

    @property
    def status_code(self) -> int:
        return _STATUS.get(self.code, status.HTTP_400_BAD_REQUEST)

    def describe(self) -> str:
        """Human-readable text for the caller."""
        if self.code in _FRIENDLY:
            return _FRIENDLY[self.code]
        return f"Code: {self.code}. Message: {self.message}"
