"""Worker to graduate artist tokens whose market cap crossed the threshold."""

import asyncio
import logging
import traceback
from typing import Optional

from config import settings_conf
from database import init_db, close as db_close
from tokens import GraduationManager, TokenStore

# Configure logging
logger = logging.getLogger(__name__)

async def check_graduations(manager: GraduationManager, store: TokenStore) -> int:
    """Evaluate every ungraduated token once.

    Returns:
        Number of tokens graduated in this pass
    """
    tokens = await store.list_ungraduated_tokens()
    logger.debug(f"Checking {len(tokens)} ungraduated tokens")

    graduated = 0
    for token in tokens:
        try:
            pool = await manager.evaluate_graduation(token.id)
            if pool is not None:
                graduated += 1
        except Exception as e:
            logger.error(f"Error evaluating graduation for token {token.id}: {str(e)}")
            logger.error(traceback.format_exc())
            continue

    if graduated:
        logger.info(f"Graduated {graduated} tokens")
    return graduated

async def run_worker(interval: Optional[int] = None, manager: Optional[GraduationManager] = None):
    """Main worker loop."""
    interval = interval or settings_conf['graduation_check_interval']
    store = manager.store if manager else TokenStore()
    manager = manager or GraduationManager(store=store)

    logger.info(f"Graduation checker starting up (every {interval}s)")
    while True:
        try:
            await check_graduations(manager, store)

        except Exception as e:
            logger.error(f"Error in worker loop: {str(e)}")
            logger.error(traceback.format_exc())

        finally:
            await asyncio.sleep(interval)

async def main():
    await init_db()
    try:
        await run_worker()
    finally:
        await db_close()

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
