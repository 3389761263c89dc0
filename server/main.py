from contextlib import asynccontextmanager
from pathlib import Path
import random
import sys

from fastapi import FastAPI
import uvicorn

# Resolve project root (two levels up from this file: server/main.py -> project root)
PROJECT_ROOT = Path(__file__).resolve().parent.parent
# Ensure project root on sys.path so `import server.*` works when running as a script
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from server.schemas import INACTIVITY_TIMEOUT, LISTEN_PORT, REAP_INTERVAL  # noqa: E402
from server.routers.session_router import router as session_router  # noqa: E402
from server.routers.ws_router import router as ws_router  # noqa: E402
from server.services.multiplexer import Multiplexer  # noqa: E402
from server.services.reaper import Reaper  # noqa: E402
from server.services.session import SessionStore  # noqa: E402


def create_app(
    store: SessionStore | None = None,
    *,
    threshold: float = INACTIVITY_TIMEOUT,
    interval: float = REAP_INTERVAL,
    rng: random.Random | None = None,
) -> FastAPI:
    """Build the application; the session registry lives on ``app.state`` and nowhere else."""
    store = store if store is not None else SessionStore()
    reaper = Reaper(store, threshold=threshold, interval=interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reaper.start()
        try:
            yield
        finally:
            await reaper.stop()

    app = FastAPI(lifespan=lifespan)
    app.state.store = store
    app.state.multiplexer = Multiplexer(store, rng=rng)
    app.state.reaper = reaper

    # Health check
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    app.include_router(session_router, tags=["sessions"])
    app.include_router(ws_router, tags=["game"])
    return app


app = create_app()


def main() -> None:
    uvicorn.run(app, host="0.0.0.0", port=LISTEN_PORT)


if __name__ == "__main__":
    main()
