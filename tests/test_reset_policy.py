import asyncio
from unittest.mock import MagicMock

import pytest

from xexun_gateway.reset_policy import (
    ChannelEvent,
    ChannelEventType,
    ConnectionResetPolicy,
    ResetState,
)

PEER = ("10.0.0.5", 40000)


def _make_policy(reset_delay: int, **kwargs):
    channel = MagicMock()
    loop = MagicMock()
    policy = ConnectionResetPolicy(channel, reset_delay, loop=loop, **kwargs)
    return policy, channel, loop


def _fire(loop: MagicMock) -> None:
    _, callback = loop.call_later.call_args[0]
    callback()


class TestArming:
    def test_connect_arms_timer(self):
        policy, channel, loop = _make_policy(5000)
        policy.on_channel_event(ChannelEvent.connected(PEER))

        assert policy.state is ResetState.ARMED
        loop.call_later.assert_called_once()
        delay, _ = loop.call_later.call_args[0]
        assert delay == 5.0
        channel.disconnect.assert_not_called()

    def test_zero_delay_never_arms(self):
        policy, _, loop = _make_policy(0)
        policy.on_channel_event(ChannelEvent.connected(PEER))
        policy.on_channel_event(ChannelEvent.connected(PEER))

        assert policy.state is ResetState.IDLE
        loop.call_later.assert_not_called()

    def test_null_value_does_not_arm(self):
        policy, _, loop = _make_policy(5000)
        policy.on_channel_event(ChannelEvent.connected(None))

        assert policy.state is ResetState.IDLE
        loop.call_later.assert_not_called()

    def test_other_events_ignored(self):
        policy, _, loop = _make_policy(5000)
        policy.on_channel_event(ChannelEvent(ChannelEventType.OTHER, "x"))
        policy.on_channel_event(ChannelEvent.disconnected())

        assert policy.state is ResetState.IDLE
        loop.call_later.assert_not_called()

    def test_second_connect_does_not_rearm(self):
        policy, _, loop = _make_policy(5000)
        policy.on_channel_event(ChannelEvent.connected(PEER))
        policy.on_channel_event(ChannelEvent.connected(PEER))

        assert loop.call_later.call_count == 1

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError, match="reset_delay"):
            ConnectionResetPolicy(MagicMock(), -1)


class TestFiring:
    def test_fire_disconnects(self):
        on_reset = MagicMock()
        policy, channel, loop = _make_policy(1000, on_reset=on_reset)
        policy.on_channel_event(ChannelEvent.connected(PEER))
        _fire(loop)

        channel.disconnect.assert_called_once()
        on_reset.assert_called_once()
        assert policy.state is ResetState.TERMINAL

    def test_no_rearm_after_fire(self):
        policy, _, loop = _make_policy(1000)
        policy.on_channel_event(ChannelEvent.connected(PEER))
        _fire(loop)
        policy.on_channel_event(ChannelEvent.connected(PEER))

        assert loop.call_later.call_count == 1

    def test_disconnect_failure_is_contained(self):
        on_reset = MagicMock()
        policy, channel, loop = _make_policy(1000, on_reset=on_reset)
        channel.disconnect.side_effect = OSError("already closed")
        policy.on_channel_event(ChannelEvent.connected(PEER))
        # Should not raise
        _fire(loop)

        on_reset.assert_not_called()
        assert policy.state is ResetState.TERMINAL


class TestCancellation:
    def test_position_keeps_timer_by_default(self):
        policy, _, loop = _make_policy(1000)
        policy.on_channel_event(ChannelEvent.connected(PEER))

        assert policy.on_position_decoded() is False
        assert policy.state is ResetState.ARMED
        loop.call_later.return_value.cancel.assert_not_called()

    def test_position_cancels_when_enabled(self):
        policy, channel, loop = _make_policy(1000, cancel_on_position=True)
        policy.on_channel_event(ChannelEvent.connected(PEER))

        assert policy.on_position_decoded() is True
        loop.call_later.return_value.cancel.assert_called_once()
        assert policy.state is ResetState.TERMINAL
        assert policy.on_position_decoded() is False
        channel.disconnect.assert_not_called()

    def test_disconnected_cancels(self):
        policy, _, loop = _make_policy(1000)
        policy.on_channel_event(ChannelEvent.connected(PEER))
        policy.on_channel_event(ChannelEvent.disconnected())

        loop.call_later.return_value.cancel.assert_called_once()
        assert policy.state is ResetState.TERMINAL


class TestEventLoopTiming:
    def test_fires_after_delay_and_not_before(self):
        channel = MagicMock()
        fired_at: list[float] = []

        async def run() -> float:
            loop = asyncio.get_running_loop()
            channel.disconnect.side_effect = lambda: fired_at.append(loop.time())
            policy = ConnectionResetPolicy(channel, 100)
            start = loop.time()
            policy.on_channel_event(ChannelEvent.connected(PEER))
            await asyncio.sleep(0.03)
            assert not fired_at
            await asyncio.sleep(0.3)
            return start

        start = asyncio.run(run())
        assert len(fired_at) == 1
        assert fired_at[0] - start >= 0.1
