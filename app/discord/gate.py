"""
Readiness gate for the Discord connection.

Disconnected -> Connecting -> Ready | Faulted. Faulted is terminal: waiters
are released and every later await_ready() fails at once. Waiters block on a
single asyncio.Event that is set on the first terminal-or-ready transition.
"""

import asyncio
from enum import Enum

import structlog

from app.core.errors import ConnectionFault

logger = structlog.get_logger()


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    FAULTED = "faulted"


class ReadinessGate:
    def __init__(self):
        self._state = ConnectionState.DISCONNECTED
        self._fault_detail: str | None = None
        self._settled = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def fault_detail(self) -> str | None:
        return self._fault_detail

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin_connecting(self):
        if self._state is not ConnectionState.DISCONNECTED:
            logger.warning("gate.ignored_transition", state=self._state.value, to="connecting")
            return
        self._state = ConnectionState.CONNECTING
        logger.info("gate.connecting")

    def mark_ready(self):
        if self._state is ConnectionState.FAULTED:
            logger.warning("gate.ignored_transition", state=self._state.value, to="ready")
            return
        self._state = ConnectionState.READY
        self._settled.set()
        logger.info("gate.ready")

    def mark_faulted(self, detail: str):
        if self._state is ConnectionState.FAULTED:
            return
        self._state = ConnectionState.FAULTED
        self._fault_detail = detail
        self._settled.set()
        logger.error("gate.faulted", detail=detail)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    async def await_ready(self, timeout: float | None = None) -> None:
        """Return once the connection is Ready; raise ConnectionFault if it faults.

        With a timeout, a wait that outlives it also raises ConnectionFault.
        """
        if self._state is ConnectionState.READY:
            return
        if self._state is ConnectionState.FAULTED:
            raise self._fault()

        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except asyncio.TimeoutError:
            raise ConnectionFault(
                f"Discord connection not ready after {timeout:g}s (state: {self._state.value})"
            ) from None

        if self._state is ConnectionState.FAULTED:
            raise self._fault()

    def _fault(self) -> ConnectionFault:
        return ConnectionFault(f"Discord connection unavailable: {self._fault_detail}")
