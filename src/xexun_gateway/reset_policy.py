import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class Channel(Protocol):
    def disconnect(self) -> None: ...


class ChannelEventType(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    OTHER = "other"


@dataclass(frozen=True)
class ChannelEvent:
    type: ChannelEventType
    value: Any = None

    @classmethod
    def connected(cls, value: Any) -> "ChannelEvent":
        return cls(ChannelEventType.CONNECTED, value)

    @classmethod
    def disconnected(cls) -> "ChannelEvent":
        return cls(ChannelEventType.DISCONNECTED)


class ResetState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    TERMINAL = "terminal"


class ConnectionResetPolicy:
    """Forcibly disconnects a channel a fixed delay after it connects.

    One instance per channel. A CONNECTED event with a non-null value arms a
    single one-shot timer (``reset_delay`` ms, 0 disables the policy); when it
    fires the channel is disconnected unconditionally. Further CONNECTED
    events never arm a second timer.

    With ``cancel_on_position`` the pending timer is cancelled as soon as the
    channel produces a decoded position. A DISCONNECTED event always cancels
    it, since there is nothing left to reset.
    """

    def __init__(
        self,
        channel: Channel,
        reset_delay: int,
        *,
        cancel_on_position: bool = False,
        loop: asyncio.AbstractEventLoop | None = None,
        on_reset: Callable[[], None] | None = None,
    ) -> None:
        if reset_delay < 0:
            raise ValueError(f"reset_delay must be >= 0, got {reset_delay}")
        self.channel = channel
        self.reset_delay = reset_delay
        self.cancel_on_position = cancel_on_position
        self.state = ResetState.IDLE
        self._loop = loop
        self._on_reset = on_reset
        self._handle: asyncio.TimerHandle | None = None

    # ── Events ─────────────────────────────────────────────

    def on_channel_event(self, event: ChannelEvent) -> None:
        if event.type is ChannelEventType.CONNECTED:
            if event.value is None or self.reset_delay == 0:
                return
            if self.state is not ResetState.IDLE:
                logger.debug("Reset already %s, ignoring connect", self.state.value)
                return
            self._arm()
        elif event.type is ChannelEventType.DISCONNECTED:
            if self.state is ResetState.ARMED:
                self._cancel()

    def on_position_decoded(self) -> bool:
        """Returns True if this call cancelled a pending reset."""
        if self.cancel_on_position and self.state is ResetState.ARMED:
            self._cancel()
            logger.debug("Reset cancelled after decoded position")
            return True
        return False

    # ── Timer ──────────────────────────────────────────────

    def _arm(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.reset_delay / 1000, self._fire)
        self.state = ResetState.ARMED
        logger.debug("Reset armed for %d ms", self.reset_delay)

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.state = ResetState.TERMINAL

    def _fire(self) -> None:
        self._handle = None
        self.state = ResetState.TERMINAL
        logger.info("Reset delay of %d ms elapsed, disconnecting channel", self.reset_delay)
        try:
            self.channel.disconnect()
        except Exception as exc:
            logger.error("Forced disconnect failed: %s", exc)
            return
        if self._on_reset:
            self._on_reset()
