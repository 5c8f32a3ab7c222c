import time
from collections import deque
from dataclasses import dataclass, field

from xexun_gateway.models import PositionRecord


@dataclass
class GatewayState:
    # Listener
    listening: bool = False
    active_connections: int = 0
    connections_total: int = 0

    # Counters
    sentences_received: int = 0
    positions_decoded: int = 0
    malformed_sentences: int = 0
    unknown_devices: int = 0
    registry_errors: int = 0
    resets_fired: int = 0
    resets_cancelled: int = 0

    # Most recent first
    recent_positions: deque[PositionRecord] = field(
        default_factory=lambda: deque(maxlen=100)
    )
    last_position_time: float = 0.0

    def record_position(self, position: PositionRecord) -> None:
        self.recent_positions.appendleft(position)
        self.last_position_time = time.monotonic()

    @property
    def last_position(self) -> PositionRecord | None:
        return self.recent_positions[0] if self.recent_positions else None
