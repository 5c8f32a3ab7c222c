from itertools import islice

from fastapi import APIRouter, HTTPException, Query, Request

from xexun_gateway.models import PositionRecord

router = APIRouter(tags=["positions"])


@router.get("/positions/latest", response_model=PositionRecord)
async def get_latest_position(request: Request) -> PositionRecord:
    position = request.app.state.gateway_state.last_position
    if position is None:
        raise HTTPException(status_code=404, detail="No position decoded yet")
    return position


@router.get("/positions", response_model=list[PositionRecord])
async def get_positions(
    request: Request, limit: int = Query(20, ge=1, le=1000)
) -> list[PositionRecord]:
    recent = request.app.state.gateway_state.recent_positions
    return list(islice(recent, limit))
