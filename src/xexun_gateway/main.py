import logging
import time
from collections import deque
from contextlib import asynccontextmanager

from fastapi import FastAPI

from xexun_gateway.config import Settings
from xexun_gateway.decoder import Xexun2Decoder
from xexun_gateway.gateway import TrackerGateway
from xexun_gateway.gateway_state import GatewayState
from xexun_gateway.registry import HttpDeviceRegistry, StaticDeviceRegistry
from xexun_gateway.routes.positions import router as positions_router
from xexun_gateway.routes.status import router as status_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = Settings()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    )
    logger = logging.getLogger("xexun_gateway")

    if config.registry_enabled:
        registry = HttpDeviceRegistry(config.registry_url, config.registry_timeout)
        await registry.start()
    else:
        registry = StaticDeviceRegistry(config.devices)
        logger.info("Using static device table (%d devices)", len(config.devices))

    state = GatewayState(recent_positions=deque(maxlen=config.recent_positions))
    gateway = TrackerGateway(config, state, Xexun2Decoder(registry))

    app.state.config = config
    app.state.gateway_state = state
    app.state.gateway = gateway
    app.state.start_time = time.monotonic()

    await gateway.start()
    logger.info("Xexun gateway ready on port %s", gateway.port)

    yield

    await gateway.stop()
    if isinstance(registry, HttpDeviceRegistry):
        await registry.stop()
    logger.info("Xexun gateway stopped")


app = FastAPI(
    title="Xexun Gateway",
    description="TCP ingestion gateway for Xexun GPS trackers",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(status_router)
app.include_router(positions_router)
