import asyncio
import logging
from typing import Awaitable, Callable

from xexun_gateway.config import Settings
from xexun_gateway.decoder import MalformedSentence, UnknownDevice, Xexun2Decoder
from xexun_gateway.gateway_state import GatewayState
from xexun_gateway.models import PositionRecord
from xexun_gateway.registry import RegistryError
from xexun_gateway.reset_policy import ChannelEvent, ConnectionResetPolicy

logger = logging.getLogger(__name__)

PositionSink = Callable[[PositionRecord], Awaitable[None]]


class StreamChannel:
    """Channel handle over an asyncio stream; disconnect drops the socket."""

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer

    def disconnect(self) -> None:
        self._writer.transport.abort()


class TrackerGateway:
    """TCP listener for Xexun trackers.

    Each connection is read line by line; every line goes through the
    decoder and decoded positions are handed to ``sink``. Each connection
    gets its own ConnectionResetPolicy.
    """

    def __init__(
        self,
        config: Settings,
        state: GatewayState,
        decoder: Xexun2Decoder,
        sink: PositionSink | None = None,
    ) -> None:
        self.config = config
        self.state = state
        self.decoder = decoder
        self.sink = sink or self._record
        self._server: asyncio.Server | None = None
        self._channels: set[StreamChannel] = set()

    @property
    def port(self) -> int | None:
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    # ── Lifecycle ──────────────────────────────────────────

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_client,
            self.config.listen_host,
            self.config.listen_port,
            limit=self.config.max_line_length,
        )
        self.state.listening = True
        logger.info(
            "TrackerGateway listening on %s:%s (reset_delay=%d ms)",
            self.config.listen_host,
            self.port,
            self.config.reset_delay,
        )

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            for channel in list(self._channels):
                channel.disconnect()
            await self._server.wait_closed()
            self._server = None
        self.state.listening = False
        logger.info("TrackerGateway stopped")

    # ── Connections ────────────────────────────────────────

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        channel = StreamChannel(writer)
        policy = ConnectionResetPolicy(
            channel,
            self.config.reset_delay,
            cancel_on_position=self.config.cancel_reset_on_position,
            on_reset=self._count_reset,
        )

        self._channels.add(channel)
        self.state.connections_total += 1
        self.state.active_connections += 1
        logger.info("Connection from %s", peer)
        policy.on_channel_event(ChannelEvent.connected(peer))

        try:
            while True:
                try:
                    raw = await reader.readline()
                except ValueError:
                    logger.warning(
                        "Line from %s exceeds %d bytes, closing",
                        peer,
                        self.config.max_line_length,
                    )
                    break
                except ConnectionError as exc:
                    logger.info("Connection from %s lost: %s", peer, exc)
                    break
                if not raw:
                    break

                line = raw.decode("ascii", errors="replace").rstrip("\r\n")
                if not line:
                    continue
                await self._process_line(line, policy, peer)
        except Exception as exc:
            logger.error("Unexpected error on connection from %s: %s", peer, exc)
        finally:
            policy.on_channel_event(ChannelEvent.disconnected())
            self._channels.discard(channel)
            self.state.active_connections -= 1
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as exc:
                logger.debug("Close of %s raised: %s", peer, exc)
            logger.info("Connection from %s closed", peer)

    async def _process_line(
        self, line: str, policy: ConnectionResetPolicy, peer
    ) -> None:
        self.state.sentences_received += 1
        try:
            position = await self.decoder.decode(line)
        except MalformedSentence:
            self.state.malformed_sentences += 1
            logger.warning("Malformed sentence from %s: %r", peer, line)
            return
        except UnknownDevice as exc:
            self.state.unknown_devices += 1
            logger.info("Unknown device IMEI %s from %s", exc.imei, peer)
            return
        except RegistryError as exc:
            self.state.registry_errors += 1
            logger.error("Registry unavailable, dropping sentence from %s: %s", peer, exc)
            return

        self.state.positions_decoded += 1
        if policy.on_position_decoded():
            self.state.resets_cancelled += 1

        try:
            await self.sink(position)
        except Exception as exc:
            logger.error("Position sink failed for device %s: %s", position.device_id, exc)

    # ── Defaults ───────────────────────────────────────────

    async def _record(self, position: PositionRecord) -> None:
        self.state.record_position(position)

    def _count_reset(self) -> None:
        self.state.resets_fired += 1
