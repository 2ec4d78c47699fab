"""Cancellation of the in-flight session.

Cancelling is advisory towards the backend and authoritative locally: the
controller forwards a signal tagged with the session id, then always runs
the local cleanup so the UI stops loading right away, whatever the signal's
fate. A session that natural completion already retired is left alone.
"""

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum

from heliumai.errors import SessionInFlightError, SessionNotFoundError
from heliumai.logging_config import get_logger
from heliumai.models.session import Session

logger = get_logger(__name__)

CancelSignal = Callable[[str], Awaitable[None]]
CleanupCallback = Callable[[Session], Awaitable[None] | None]


class CancelOutcome(str, Enum):
    NO_ACTIVE_SESSION = "no_active_session"
    SIGNALLED = "signalled"
    ALREADY_FINISHED = "already_finished"
    SIGNAL_FAILED = "signal_failed"


class CancellationController:
    """Tracks the single active session and cancels it on request.

    Example:
        >>> controller = CancellationController(backend.cancel_inference)
        >>> controller.activate(session)
        >>> outcome = await controller.cancel(cleanup)
    """

    def __init__(self, signal: CancelSignal):
        self._signal = signal
        self._active: Session | None = None

    @property
    def active(self) -> Session | None:
        return self._active

    def activate(self, session: Session) -> None:
        if self._active is not None:
            raise SessionInFlightError(self._active.id)
        self._active = session
        logger.debug(f"Session {session.id} activated")

    def retire(self, session: Session) -> None:
        """Mark the session finished; idempotent."""
        session.retired = True
        if self._active is session:
            self._active = None
            logger.debug(f"Session {session.id} retired")

    async def cancel(self, cleanup: CleanupCallback) -> CancelOutcome:
        session = self._active
        if session is None:
            logger.debug("Cancel requested with no active session")
            return CancelOutcome.NO_ACTIVE_SESSION

        session.cancel_requested = True
        logger.info(f"Cancelling session {session.id}")
        try:
            await self._signal(session.id)
            outcome = CancelOutcome.SIGNALLED
        except SessionNotFoundError:
            logger.debug(f"Backend no longer tracks session {session.id}; it already finished")
            outcome = CancelOutcome.ALREADY_FINISHED
        except Exception as e:
            logger.warning(f"Cancel signal for session {session.id} failed: {type(e).__name__}: {e}")
            outcome = CancelOutcome.SIGNAL_FAILED
        finally:
            result = cleanup(session)
            if inspect.isawaitable(result):
                await result
            self.retire(session)

        return outcome
