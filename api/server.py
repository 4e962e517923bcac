"""Server entry point for running the FastAPI application."""

import asyncio
import os
import signal

import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file before the app modules read them
load_dotenv()

APP_PATH = "api.app:app"


class Server:
    """Uvicorn server wrapper with explicit signal handling."""

    def __init__(self, config: uvicorn.Config):
        self.server = uvicorn.Server(config)

    def handle_exit(self, _sig, _frame):
        """Ask uvicorn to finish in-flight streams and stop."""
        print("\n[INFO] Received shutdown signal, stopping server...")
        self.server.should_exit = True

    async def serve(self):
        signal.signal(signal.SIGINT, self.handle_exit)
        signal.signal(signal.SIGTERM, self.handle_exit)

        await self.server.serve()


def run_server(host: str | None = None, port: int | None = None, reload: bool = False):
    """Run the FastAPI server."""
    host = host or os.getenv("API_HOST", "0.0.0.0")
    port = port or int(os.getenv("API_PORT", "8000"))

    if reload:
        # Ctrl-C handling may be degraded in reload mode due to the subprocess
        uvicorn.run(APP_PATH, host=host, port=port, reload=True, log_level="info", access_log=False)
        return

    config = uvicorn.Config(APP_PATH, host=host, port=port, log_level="info", access_log=False)
    asyncio.run(Server(config).serve())


if __name__ == "__main__":
    run_server(reload=os.getenv("API_RELOAD", "false").lower() == "true")
