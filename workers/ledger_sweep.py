"""Worker that expires overdue payouts and purges expired bookkeeping rows."""

import asyncio
import logging
from typing import Dict

logger = logging.getLogger(__name__)

async def run_sweep(services) -> Dict[str, int]:
    """Run one sweep.

    Args:
        services: Application services (ledger, events, tokens)

    Returns:
        Counts of expired transfers and purged rows
    """
    expired = await services.ledger.expire_overdue()
    events = await services.events.purge_expired()
    tokens = await services.tokens.purge_expired()
    logger.info(f"Sweep finished: {expired} transfers expired, {events} events and {tokens} tokens purged")
    return {'expired_transfers': expired, 'purged_events': events, 'purged_tokens': tokens}

async def run_worker(services, interval: int = 3600):
    """Sweep forever, every interval seconds."""
    logger.info(f"Starting ledger sweep worker (every {interval}s)")
    while True:
        try:
            await run_sweep(services)
        except Exception:
            logger.exception("Error in ledger sweep")
        await asyncio.sleep(interval)

if __name__ == "__main__":
    from config import get_settings
    from database import init_db, close as db_close, get_pool
    from api.dependencies import build_services

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    async def main():
        settings = get_settings()
        await init_db(settings['db_url'])
        try:
            services = build_services(await get_pool(), settings)
            await run_worker(services, settings['sweep_interval_sec'])
        finally:
            await db_close()

    asyncio.run(main())
