"""End-to-end mint orchestration.

``MintOrchestrator.mint`` walks a request through

    VALIDATING -> SIGNATURE_CHECKING -> LOCKING -> DELEGATING -> RECORDING -> DONE

and any step can end in ABORTED with a user-facing reason. The orchestrator is
request scoped and keeps no state between calls; all coordination goes through
the key-value ledger (see :mod:`mintgate.services.ledger` for the accepted
duplicate window).
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from mintgate.core.errors import (
    AlreadyMintedError,
    CapReachedError,
    MintGateError,
    MintTimeoutError,
    NotFoundError,
    SignatureError,
    SponsorError,
    ValidationError,
)
from mintgate.core.settings import Settings
from mintgate.schemas.event import MintEvent
from mintgate.schemas.mint import MintRequest
from mintgate.services.event_window import is_active
from mintgate.services.events import EventRepository
from mintgate.services.ledger import MintLedger
from mintgate.services.signature import SignatureVerifier
from mintgate.services.sponsor import SponsorDelegator
from mintgate.utils.best_effort import best_effort

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")

# Keeps bookkeeping tasks alive after the response that started them is sent.
_pending_bookkeeping: set[asyncio.Task[None]] = set()


class MintState(str, Enum):
    VALIDATING = "validating"
    SIGNATURE_CHECKING = "signature_checking"
    LOCKING = "locking"
    DELEGATING = "delegating"
    RECORDING = "recording"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class OrchestratorConfig:
    """Immutable configuration for the mint orchestrator.

    ``request_timeout_seconds`` bounds everything up to and including the
    sponsor call. Bookkeeping after a confirmed mint has its own bound and is
    never cancelled by the request deadline.
    """

    request_timeout_seconds: float = 25.0
    bookkeeping_timeout_seconds: float = 4.0


def load_orchestrator_config(settings: Settings) -> OrchestratorConfig:
    return OrchestratorConfig(
        request_timeout_seconds=settings.mint_request_timeout_seconds,
        bookkeeping_timeout_seconds=settings.mint_bookkeeping_timeout_seconds,
    )


@dataclass
class MintAttempt:
    """Progress of a single mint request through the state machine."""

    event_id: str
    address: str
    state: MintState = MintState.VALIDATING
    history: list[MintState] = field(default_factory=lambda: [MintState.VALIDATING])
    abort_reason: str | None = None

    def advance(self, state: MintState) -> None:
        logger.debug(
            "Mint %s/%s: %s -> %s", self.event_id, self.address, self.state.value, state.value
        )
        self.state = state
        self.history.append(state)

    @property
    def path(self) -> str:
        return " -> ".join(state.value for state in self.history)

    def abort(self, error: MintGateError) -> MintGateError:
        self.abort_reason = error.message
        self.advance(MintState.ABORTED)
        return error


@dataclass(frozen=True)
class MintOutcome:
    tx_digest: str
    event_id: str
    address: str


def validate_address(address: str) -> bool:
    """Return True for ``0x`` followed by 64 hex characters."""
    return bool(ADDRESS_PATTERN.match(address or ""))


class MintOrchestrator:
    """Composes verification, ledger and sponsor into ``mint`` and ``check``."""

    def __init__(
        self,
        *,
        events: EventRepository,
        ledger: MintLedger,
        verifier: SignatureVerifier,
        sponsor: SponsorDelegator,
        config: OrchestratorConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.events = events
        self.ledger = ledger
        self.verifier = verifier
        self.sponsor = sponsor
        self.config = config or OrchestratorConfig()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def check(self, event_id: str, address: str) -> bool:
        """Return True if ``address`` already minted ``event_id``. Read-only."""
        if not event_id:
            raise ValidationError("eventId is required")
        if not validate_address(address):
            raise ValidationError("invalid address")
        return await self.ledger.already_minted(event_id, address)

    async def mint(self, request: MintRequest) -> MintOutcome:
        """Run a mint request to completion or raise the abort reason.

        The request deadline covers validation through delegation. Once the
        sponsor has returned a digest the mint is reported as successful,
        whatever happens to the bookkeeping.
        """
        attempt = MintAttempt(event_id=request.event_id, address=request.address.lower())
        try:
            async with asyncio.timeout(self.config.request_timeout_seconds):
                event, tx_digest = await self._authorize_and_delegate(request, attempt)
        except TimeoutError as exc:
            logger.error(
                "Mint %s/%s exceeded %.1fs in state %s",
                attempt.event_id,
                attempt.address,
                self.config.request_timeout_seconds,
                attempt.state.value,
            )
            raise attempt.abort(MintTimeoutError("mint request timed out")) from exc
        except MintGateError as exc:
            if attempt.state is not MintState.ABORTED:
                attempt.abort(exc)
            logger.info(
                "Mint %s/%s aborted: %s (%s)",
                attempt.event_id,
                attempt.address,
                attempt.abort_reason,
                attempt.path,
            )
            raise

        attempt.advance(MintState.RECORDING)
        await self._record(request, attempt, tx_digest)
        attempt.advance(MintState.DONE)
        logger.debug("Mint %s/%s done: %s", attempt.event_id, attempt.address, attempt.path)
        return MintOutcome(tx_digest=tx_digest, event_id=event.id, address=attempt.address)

    async def _authorize_and_delegate(
        self,
        request: MintRequest,
        attempt: MintAttempt,
    ) -> tuple[MintEvent, str]:
        event = await self._validate(request, attempt)

        attempt.advance(MintState.SIGNATURE_CHECKING)
        if not self.verifier.verify(
            request.signature,
            request.bytes,
            request.address,
            request.public_key,
            auth_message=request.auth_message,
        ):
            raise attempt.abort(SignatureError("invalid signature"))

        attempt.advance(MintState.LOCKING)
        if await self.ledger.is_locked(request.event_id, request.address):
            logger.warning(
                "Mint %s/%s already in progress elsewhere; continuing",
                attempt.event_id,
                attempt.address,
            )
        await self.ledger.lock(request.event_id, request.address)

        attempt.advance(MintState.DELEGATING)
        try:
            tx_digest = await self.sponsor.delegate(event, request.address)
        except SponsorError as exc:
            await best_effort("unlock", self.ledger.unlock(request.event_id, request.address))
            attempt.abort(exc)
            raise
        return event, tx_digest

    async def _record(self, request: MintRequest, attempt: MintAttempt, tx_digest: str) -> None:
        """Write the receipt and bump the counter without failing the mint.

        The writes run in their own task so that neither the request deadline
        nor a slow ledger can cancel them. If they outlive
        ``bookkeeping_timeout_seconds`` the response goes out and the task
        finishes in the background.
        """
        task = asyncio.create_task(
            self._write_bookkeeping(request.event_id, request.address, tx_digest),
            name=f"mint-bookkeeping:{attempt.event_id}:{attempt.address}",
        )
        _pending_bookkeeping.add(task)
        task.add_done_callback(_pending_bookkeeping.discard)

        done, _ = await asyncio.wait({task}, timeout=self.config.bookkeeping_timeout_seconds)
        if not done:
            logger.warning(
                "Bookkeeping for mint %s/%s still running after %.1fs; tx %s",
                attempt.event_id,
                attempt.address,
                self.config.bookkeeping_timeout_seconds,
                tx_digest,
            )

    async def _write_bookkeeping(self, event_id: str, address: str, tx_digest: str) -> None:
        await asyncio.gather(
            best_effort("record", self.ledger.record(event_id, address, tx_digest)),
            best_effort("increment_counter", self.ledger.increment_counter(event_id)),
        )

    async def _validate(self, request: MintRequest, attempt: MintAttempt) -> MintEvent:
        if not validate_address(request.address):
            raise attempt.abort(ValidationError("invalid address"))

        event = await self.events.get(request.event_id)
        if event is None:
            raise attempt.abort(NotFoundError("event not found"))
        if not is_active(event, self._clock()):
            raise attempt.abort(ValidationError("event not active"))
        if await self.ledger.already_minted(request.event_id, request.address):
            raise attempt.abort(AlreadyMintedError("already minted"))
        if await self.ledger.cap_reached(event, request.event_id):
            raise attempt.abort(CapReachedError("cap reached"))
        return event
