"""Command line interface for running the API server."""
import logging

import uvicorn

from config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def main():
    """Run the API server; database and sweep worker start in the app lifespan."""
    settings = get_settings()
    logger.info(f"Starting API for {settings['base_url']}")
    uvicorn.run(
        "api:app",
        host=settings['host'],
        port=settings['port'],
        log_level="info"
    )

if __name__ == "__main__":
    main()
