"""Magic link endpoints.

Passwordless sign-in via emailed, signed, time-limited links.

Endpoints:
- POST /auth/magic-link: request a magic link email (always neutral)
- GET /auth/magic-link/validate: email format hint for the login form
- GET /auth/magic-link/login: redeem a single-use link
- GET /auth/magic-link/persistent-login: redeem a persistent link
- POST /auth/logout: clear session cookie
"""

import json
from typing import Annotated, Any

import structlog
from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, field_validator
from starlette.responses import Response

from magic_link.api.deps import Accounts, Dispatcher, Issuer, Redeemer
from magic_link.core.auth import (
    clear_auth_cookie,
    cookie_session_finalizer,
    require_session_secret,
)
from magic_link.core.config import settings
from magic_link.core.errors import (
    ConfigurationError,
    ExpiredOrInvalidTokenError,
    InactiveOrMissingAccountError,
    InvalidInputError,
    InvalidLinkFormatError,
)
from magic_link.core.rate_limiting import limiter
from magic_link.core.responses import DataResponse
from magic_link.core.tokens import LinkClass, MagicLinkToken
from magic_link.services.link_redeemer import RejectionReason, normalize_destination

logger = structlog.get_logger()

router = APIRouter()

NEUTRAL_CONFIRMATION = "If the email exists in our system, a magic link was sent"

# RFC 5321 path limit
_MAX_EMAIL_LENGTH = 254

_VALIDATE_EMPTY_MSG = "Enter your email address."
_VALIDATE_INVALID_MSG = "Invalid email format"
_VALIDATE_OK_MSG = "Valid email format."
_VALIDATE_FOUND_MSG = "An account exists for this email."
_VALIDATE_NOT_FOUND_MSG = "No active account uses this email."


# ===================================================================
# Request models
# ===================================================================


class MagicLinkRequest(BaseModel):
    """Request body for POST /auth/magic-link.

    Never fails: values of the wrong type become empty, so every
    submission reaches the neutral confirmation.
    """

    model_config = ConfigDict(extra="ignore")

    email: str = ""
    destination: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _email_as_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("destination", mode="before")
    @classmethod
    def _destination_as_text(cls, value: Any) -> str | None:
        return value if isinstance(value, str) and value else None

    @classmethod
    def from_raw(cls, raw: bytes) -> "MagicLinkRequest":
        """Parse a request body; unreadable or non-object JSON is empty."""
        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            payload = None
        return cls.model_validate(payload if isinstance(payload, dict) else {})


# ===================================================================
# Helpers
# ===================================================================


def _is_valid_email(email: str) -> bool:
    if not email or len(email) > _MAX_EMAIL_LENGTH:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _neutral_confirmation() -> DataResponse[dict]:
    return DataResponse(data={"message": NEUTRAL_CONFIRMATION})


# ===================================================================
# POST /auth/magic-link
# ===================================================================


@router.post("/magic-link")
@limiter.limit(settings.rate_limit_magic_link)
async def request_magic_link(
    request: Request,
    background_tasks: BackgroundTasks,
    accounts: Accounts,
    issuer: Issuer,
    dispatcher: Dispatcher,
) -> DataResponse[dict]:
    """Request a magic link sign-in email.

    Always returns the same confirmation, whether the email was empty,
    malformed, unknown or blocked, and whether signing or delivery failed
    (prevents account enumeration). Delivery runs as a background task.

    The body is parsed by hand: FastAPI body validation would answer
    malformed JSON with a 400 instead.
    """
    body = MagicLinkRequest.from_raw(await request.body())
    email = body.email.strip().lower()
    if not _is_valid_email(email):
        return _neutral_confirmation()

    account = await accounts.get_active_by_email(email)
    if account is None:
        return _neutral_confirmation()

    destination = body.destination or settings.default_destination
    try:
        url = issuer.issue(
            account.id,
            settings.link_expiry_seconds,
            destination,
            LinkClass.SINGLE_USE,
        )
    except (ConfigurationError, InvalidInputError) as exc:
        logger.warning(
            "Magic link generation failed",
            user_id=account.id,
            error=exc.code,
        )
        return _neutral_confirmation()

    background_tasks.add_task(dispatcher.deliver, account, url)
    return _neutral_confirmation()


# ===================================================================
# GET /auth/magic-link/validate
# ===================================================================


@router.get("/magic-link/validate")
async def validate_magic_link_email(
    accounts: Accounts,
    email: str = "",
) -> JSONResponse:
    """Classify an email for client-side hints: empty, invalid or ok.

    The account lookup runs for every well-formed email. Its result is only
    reported when NEUTRAL_VALIDATION is false.
    """
    email = email.strip().lower()
    data: dict = {}
    if not email:
        data = {"status": "empty", "message": _VALIDATE_EMPTY_MSG}
    elif not _is_valid_email(email):
        data = {"status": "invalid", "message": _VALIDATE_INVALID_MSG}
    else:
        account = await accounts.get_active_by_email(email)
        data = {"status": "ok", "message": _VALIDATE_OK_MSG}
        if not settings.neutral_validation:
            exists = account is not None
            data["account_exists"] = exists
            data["message"] = _VALIDATE_FOUND_MSG if exists else _VALIDATE_NOT_FOUND_MSG

    return JSONResponse(
        content=DataResponse(data=data).model_dump(),
        headers={
            "Vary": "HX-Request",
            "HX-Trigger": json.dumps(
                {"magic-link-validate": {"status": data["status"]}}
            ),
        },
    )


# ===================================================================
# GET /auth/magic-link/login, /auth/magic-link/persistent-login
# ===================================================================


async def _redeem(
    redeemer: Redeemer,
    route_class: LinkClass,
    *,
    uid: int,
    exp: int,
    nonce: str,
    sig: str,
    destination: str,
) -> RedirectResponse:
    require_session_secret()
    response = RedirectResponse(
        url=normalize_destination(destination),
        status_code=302,
    )
    result = await redeemer.redeem(
        MagicLinkToken(user_id=uid, expires_at=exp, nonce=nonce, signature=sig),
        destination,
        route_class,
        cookie_session_finalizer(response),
    )

    if result.reason is RejectionReason.INVALID_FORMAT:
        raise InvalidLinkFormatError()
    if result.reason is RejectionReason.INVALID_ACCOUNT:
        raise InactiveOrMissingAccountError()
    if not result.redirected:
        raise ExpiredOrInvalidTokenError()

    # Prevent token leakage via Referer header
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


@router.get("/magic-link/login")
@limiter.limit(settings.rate_limit_redeem)
async def magic_link_login(
    request: Request,  # noqa: ARG001
    uid: Annotated[int, Query()],
    exp: Annotated[int, Query()],
    nonce: Annotated[str, Query(min_length=1, max_length=128)],
    sig: Annotated[str, Query(min_length=1, max_length=128)],
    redeemer: Redeemer,
    destination: Annotated[str, Query(max_length=2048)] = "/",
) -> RedirectResponse:
    """Redeem a single-use link: verify, consume, sign in, redirect."""
    return await _redeem(
        redeemer,
        LinkClass.SINGLE_USE,
        uid=uid,
        exp=exp,
        nonce=nonce,
        sig=sig,
        destination=destination,
    )


@router.get("/magic-link/persistent-login")
@limiter.limit(settings.rate_limit_redeem)
async def magic_link_persistent_login(
    request: Request,  # noqa: ARG001
    uid: Annotated[int, Query()],
    exp: Annotated[int, Query()],
    nonce: Annotated[str, Query(min_length=1, max_length=128)],
    sig: Annotated[str, Query(min_length=1, max_length=128)],
    redeemer: Redeemer,
    destination: Annotated[str, Query(max_length=2048)] = "/",
) -> RedirectResponse:
    """Redeem a persistent link: verify, sign in, redirect. Never consumed."""
    return await _redeem(
        redeemer,
        LinkClass.PERSISTENT,
        uid=uid,
        exp=exp,
        nonce=nonce,
        sig=sig,
        destination=destination,
    )


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear the session cookie. No auth required."""
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})
