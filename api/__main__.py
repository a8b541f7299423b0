"""Run the Crescendo API with ``python -m api``.

The graduation checker runs inside the app's lifespan, so this process is
the whole backend: HTTP, WebSockets and the background sweep.
"""
import asyncio
import logging
import signal
import uvicorn

from config import settings_conf
from database import init_db, close as db_close

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def build_server() -> uvicorn.Server:
    config = uvicorn.Config(
        "api:app",
        host=settings_conf['api_host'],
        port=settings_conf['api_port'],
        ws="websockets",
        log_level="info"
    )
    return uvicorn.Server(config)

async def main():
    """Open the database, serve until SIGINT/SIGTERM, then clean up."""
    server = build_server()

    def request_exit():
        logger.info("Shutdown signal received")
        server.should_exit = True

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_exit)

    try:
        await init_db()
        logger.info(f"Serving on {settings_conf['api_host']}:{settings_conf['api_port']}")
        await server.serve()
    except Exception as e:
        logger.error(f"API stopped with error: {e}")
        raise
    finally:
        await db_close()
        logger.info("Shutdown complete")

if __name__ == "__main__":
    asyncio.run(main())
