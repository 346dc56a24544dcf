"""Error types raised by the magic link service.

Each subclass fixes a machine-readable ``code`` and the HTTP ``status_code``
that main.py renders into the {"error": {...}} envelope. The link request
endpoint catches issuance errors itself so its answer stays neutral;
everything else propagates to the handlers.
"""


class APIError(Exception):
    """Base error with code, message, status and optional details."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: list[dict] | None = None,
    ) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


# ---------------------------------------------------------------------------
# 400: caller input
# ---------------------------------------------------------------------------


class ValidationError(APIError):
    """Request parameters failed validation."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidInputError(ValidationError):
    """A value handed to issuance or the operator command was rejected.

    Covers non-positive lifetimes, unknown or blocked users in the operator
    command and unparseable expiry strings. The public request path folds
    it into the neutral confirmation.
    """


class InvalidUserError(InvalidInputError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User id must be a positive integer, got {user_id}")


# ---------------------------------------------------------------------------
# 400: redemption
# ---------------------------------------------------------------------------


class ExpiredOrInvalidTokenError(APIError):
    """Link failed verification or was already used.

    Expired, tampered and replayed links share one message so the
    response reveals nothing about which check failed.
    """

    code = "INVALID_MAGIC_LINK"
    status_code = 400

    def __init__(self, message: str = "Invalid or expired link.") -> None:
        super().__init__(message)


class InvalidLinkFormatError(ExpiredOrInvalidTokenError):
    """A single-use link arrived on the persistent route."""

    def __init__(self) -> None:
        super().__init__("Invalid link format.")


class InactiveOrMissingAccountError(APIError):
    """Signature was good but the account is blocked or deleted."""

    code = "INVALID_ACCOUNT"
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Invalid account.")


# ---------------------------------------------------------------------------
# 5xx: server side
# ---------------------------------------------------------------------------


class ConfigurationError(APIError):
    code = "CONFIGURATION_ERROR"
    status_code = 500


class MissingSecretError(ConfigurationError):
    """A signing secret is empty; nothing gets signed without it."""

    def __init__(self, setting: str = "LINK_SIGNING_SECRET") -> None:
        self.setting = setting
        super().__init__(f"{setting} is not configured")


class DeliveryError(APIError):
    """A mail transport could not hand off the message.

    MailDispatcher catches this to try the fallback transport; it never
    reaches an HTTP response on the request path.
    """

    code = "DELIVERY_FAILED"
    status_code = 502

    def __init__(self, transport: str, reason: str) -> None:
        self.transport = transport
        super().__init__(f"{transport}: {reason}")


class InternalError(APIError):
    """Anything unexpected. Rendered without details."""

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(message)
