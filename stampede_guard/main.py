import argparse
import logging

import uvicorn

from stampede_guard.api.routes import create_app
from stampede_guard.config import API_HOST, API_PORT, DEBUG_MODE
from stampede_guard.core.sensors import SimulatedSoundSource, SoundSampler
from stampede_guard.core.simulate_device import simulate_tick
from stampede_guard.core.storage_bus import StorageBus
from stampede_guard.db.mongo import get_store_collection
from stampede_guard.utils.scheduler import start_scheduler

logger = logging.getLogger(__name__)


def build_app(simulate=False):
    scheduler = start_scheduler()
    bus = StorageBus(get_store_collection())
    app = create_app(bus, scheduler=scheduler)

    if simulate:
        source = SimulatedSoundSource()
        SoundSampler(source, app.state.monitor, scheduler).start()
        scheduler.add_job(
            simulate_tick, "interval", seconds=1, args=[app.state.monitor],
            id="device-simulator", max_instances=1,
        )
        logger.info("[i] Simulated device feeds enabled")
    return app


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the Stampede Guard API.")
    parser.add_argument("--host", default=API_HOST)
    parser.add_argument("--port", type=int, default=API_PORT)
    parser.add_argument("--simulate", action="store_true", help="Feed simulated sensor samples")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if DEBUG_MODE else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    uvicorn.run(build_app(simulate=args.simulate), host=args.host, port=args.port)
