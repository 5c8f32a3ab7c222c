from datetime import datetime

from pydantic import BaseModel, ConfigDict


# ── Decoder output ─────────────────────────────────────────


class PositionRecord(BaseModel):
    """One decoded tracker report. Built in a single step, never mutated."""

    model_config = ConfigDict(frozen=True)

    device_id: int
    time: datetime
    valid: bool
    latitude: float
    longitude: float
    altitude: float = 0.0
    speed: float
    course: float = 0.0
    power: float


# ── Responses ──────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    listening: bool
    uptime_s: float
    active_connections: int


class StatsResponse(BaseModel):
    connections_total: int
    active_connections: int
    sentences_received: int
    positions_decoded: int
    malformed_sentences: int
    unknown_devices: int
    registry_errors: int
    resets_fired: int
    resets_cancelled: int
    last_position_age_s: float | None
