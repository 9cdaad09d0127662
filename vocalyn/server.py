"""Server entry point for running the FastAPI application."""

import asyncio
import os
import signal

import structlog
import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = structlog.get_logger(__name__)

HOST = os.getenv("VOCALYN_HOST", "0.0.0.0")
PORT = int(os.getenv("VOCALYN_PORT", "8000"))


class Server:
    """Uvicorn server wrapper that stops cleanly on SIGINT/SIGTERM."""

    def __init__(self, config: uvicorn.Config):
        self.server = uvicorn.Server(config)

    def handle_exit(self, sig, _frame):
        logger.info("shutdown_signal_received", signal=signal.Signals(sig).name)
        self.server.should_exit = True

    async def serve(self):
        signal.signal(signal.SIGINT, self.handle_exit)
        signal.signal(signal.SIGTERM, self.handle_exit)

        await self.server.serve()


def run_server(host: str = HOST, port: int = PORT, reload: bool = False):
    """Run the Vocalyn API server."""
    if reload:
        # Ctrl-C handling may be degraded in reload mode due to the subprocess
        uvicorn.run(
            "vocalyn.app:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info",
            access_log=False,
        )
        return

    config = uvicorn.Config(
        "vocalyn.app:app",
        host=host,
        port=port,
        log_level="info",
        access_log=False,
    )
    asyncio.run(Server(config).serve())


if __name__ == "__main__":
    run_server(reload=os.getenv("VOCALYN_RELOAD", "").lower() == "true")
