import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI

from pwaccounts.paths import log_dir
from pwaccounts.supervisor.api_accounts import router as accounts_router
from pwaccounts.supervisor.api_processes import router as processes_router
from pwaccounts.supervisor.api_scan import router as scan_router
from pwaccounts.supervisor.api_stream import router as stream_router
from pwaccounts.supervisor.runtime import LauncherRuntime

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3

logger = logging.getLogger("pwaccounts.supervisor")


def configure_logging(level: int = logging.INFO) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    try:
        directory = log_dir()
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                directory / "pwaccounts.log",
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )
    except OSError as exc:
        logger.warning("File logging disabled: %s", exc)
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def create_app(runtime: LauncherRuntime | None = None) -> FastAPI:
    app = FastAPI(title="PW Account Launcher")
    app.state.runtime = runtime or LauncherRuntime()
    app.include_router(accounts_router)
    app.include_router(processes_router)
    app.include_router(scan_router)
    app.include_router(stream_router)

    @app.on_event("startup")
    async def startup_event():
        logger.info("Initializing account database...")
        await app.state.runtime.startup()
        logger.info("Launcher host started.")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Stopping process supervisor...")
        await app.state.runtime.shutdown()
        logger.info("Supervisor stopped; game clients keep running.")

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "version": "0.1.0",
            "running_accounts": len(app.state.runtime.supervisor.list_running()),
        }

    @app.post("/shutdown")
    async def shutdown():
        logger.info("Shutdown requested via API.")
        await app.state.runtime.shutdown()
        # Schedule process exit to allow response to be sent
        loop = asyncio.get_running_loop()
        loop.call_later(1, lambda: os._exit(0))
        return {"status": "shutting_down"}

    return app


def build_app() -> FastAPI:
    """Factory used by uvicorn when serving the host."""
    configure_logging()
    return create_app()
