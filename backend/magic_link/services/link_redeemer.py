"""Magic link redemption state machine.

Each attempt walks:

    RECEIVED -> SIGNATURE_CHECKED -> REPLAY_CHECKED (single-use route only)
             -> ACCOUNT_CHECKED -> SESSION_FINALIZED -> REDIRECTED

and stops at REJECTED on the first failed check. The route a link arrives
on decides whether the replay check runs: the persistent route only
accepts persistent-tagged nonces and never consumes signatures.

Security: bad signature, expiry and replay all reject with the same
reason so callers cannot learn token state.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from magic_link.core.replay_guard import ReplayGuard, ReplayStoreUnavailableError
from magic_link.core.tokens import LinkClass, MagicLinkToken, TokenCodec
from magic_link.services.accounts import Account, AccountLookup

logger = structlog.get_logger()

SessionFinalizer = Callable[[Account], Awaitable[None]]


class RedemptionState(Enum):
    RECEIVED = "received"
    SIGNATURE_CHECKED = "signature_checked"
    REPLAY_CHECKED = "replay_checked"
    ACCOUNT_CHECKED = "account_checked"
    SESSION_FINALIZED = "session_finalized"
    REDIRECTED = "redirected"
    REJECTED = "rejected"


class RejectionReason(Enum):
    INVALID_FORMAT = "invalid_format"
    INVALID_TOKEN = "invalid_token"
    INVALID_ACCOUNT = "invalid_account"


@dataclass(frozen=True)
class RedemptionResult:
    """Terminal outcome of one redemption attempt.

    Attributes:
        state: REDIRECTED or REJECTED.
        destination: Redirect target (only meaningful when redirected).
        account: The signed-in account on success.
        reason: Why the attempt was rejected.
    """

    state: RedemptionState
    destination: str = "/"
    account: Account | None = None
    reason: RejectionReason | None = None

    @property
    def redirected(self) -> bool:
        return self.state is RedemptionState.REDIRECTED


def normalize_destination(destination: str | None) -> str:
    """Empty or missing destinations redirect to the site root."""
    return destination or "/"


def _wall_clock() -> int:
    return int(time.time())


class LinkRedeemer:
    """Validates incoming tokens and finalizes the login on success.

    Args:
        codec: Token verifier.
        replay_guard: Consumed-signature store for single-use links.
        accounts: Active account lookup.
        clock: Unix seconds source. Injected by tests.
    """

    def __init__(
        self,
        codec: TokenCodec,
        replay_guard: ReplayGuard,
        accounts: AccountLookup,
        clock: Callable[[], int] = _wall_clock,
    ) -> None:
        self._codec = codec
        self._replay_guard = replay_guard
        self._accounts = accounts
        self._clock = clock

    async def redeem(
        self,
        token: MagicLinkToken,
        destination: str | None,
        route_class: LinkClass,
        finalize_session: SessionFinalizer,
    ) -> RedemptionResult:
        """Run one redemption attempt to a terminal state.

        Args:
            token: Parsed token from the URL.
            destination: Unsigned redirect target from the URL.
            route_class: Link class of the route the request arrived on.
            finalize_session: Host callback that logs the account in.

        Returns:
            RedemptionResult in state REDIRECTED or REJECTED.
        """
        state = RedemptionState.RECEIVED
        log = logger.bind(user_id=token.user_id, route_class=route_class.value)

        if (
            route_class is LinkClass.PERSISTENT
            and token.link_class is not LinkClass.PERSISTENT
        ):
            return self._reject(log, state, RejectionReason.INVALID_FORMAT)

        now = self._clock()
        if not self._codec.verify_token(token, now):
            return self._reject(log, state, RejectionReason.INVALID_TOKEN)
        state = RedemptionState.SIGNATURE_CHECKED

        if route_class is LinkClass.SINGLE_USE:
            if not await self._consume(token, now, log):
                return self._reject(log, state, RejectionReason.INVALID_TOKEN)
            state = RedemptionState.REPLAY_CHECKED

        account = await self._accounts.get_active_by_id(token.user_id)
        if account is None or not account.is_active:
            return self._reject(log, state, RejectionReason.INVALID_ACCOUNT)
        state = RedemptionState.ACCOUNT_CHECKED

        await finalize_session(account)
        target = normalize_destination(destination)
        log.info("Magic link redeemed", link_class=token.link_class.value)
        return RedemptionResult(
            state=RedemptionState.REDIRECTED,
            destination=target,
            account=account,
        )

    async def _consume(
        self, token: MagicLinkToken, now: int, log: structlog.BoundLogger
    ) -> bool:
        ttl = max(1, token.expires_at - now)
        try:
            return await self._replay_guard.consume_once(token.signature, ttl)
        except ReplayStoreUnavailableError:
            # Signature and expiry already passed; accept without replay check
            log.warning("Replay store unavailable; skipping one-time check")
            return True

    @staticmethod
    def _reject(
        log: structlog.BoundLogger,
        state: RedemptionState,
        reason: RejectionReason,
    ) -> RedemptionResult:
        log.info("Magic link rejected", at_state=state.value, reason=reason.value)
        return RedemptionResult(state=RedemptionState.REJECTED, reason=reason)
