import time

from fastapi import APIRouter, Request

from xexun_gateway.models import HealthResponse, StatsResponse

router = APIRouter(tags=["status"])


@router.get("/health", response_model=HealthResponse)
async def get_health(request: Request) -> HealthResponse:
    s = request.app.state.gateway_state
    start = request.app.state.start_time

    return HealthResponse(
        status="ok" if s.listening else "down",
        listening=s.listening,
        uptime_s=round(time.monotonic() - start, 1),
        active_connections=s.active_connections,
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(request: Request) -> StatsResponse:
    s = request.app.state.gateway_state
    age = (
        round(time.monotonic() - s.last_position_time, 1)
        if s.last_position is not None
        else None
    )
    return StatsResponse(
        connections_total=s.connections_total,
        active_connections=s.active_connections,
        sentences_received=s.sentences_received,
        positions_decoded=s.positions_decoded,
        malformed_sentences=s.malformed_sentences,
        unknown_devices=s.unknown_devices,
        registry_errors=s.registry_errors,
        resets_fired=s.resets_fired,
        resets_cancelled=s.resets_cancelled,
        last_position_age_s=age,
    )
