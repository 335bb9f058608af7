"""Main entry point for Price Tracker."""

import argparse
import asyncio
import sys

from loguru import logger

from .orchestrator.coordinator import RefreshError, build_coordinator
from .orchestrator.scheduler import JobScheduler
from .utils.config import get_config, get_settings
from .utils.logger import setup_logging


async def run_scheduler():
    """Run the refresh scheduler."""
    config = get_config()
    setup_logging(config.logging)

    logger.info("=" * 80)
    logger.info("Price Tracker - Starting")
    logger.info("=" * 80)

    coordinator = build_coordinator(config, get_settings())
    scheduler = JobScheduler(coordinator, config.model_dump())

    scheduler.configure_jobs()
    scheduler.start()

    logger.info("Scheduler started. Press Ctrl+C to stop.")

    try:
        while True:
            await asyncio.sleep(1)
    finally:
        logger.info("Shutting down...")
        scheduler.stop()
        coordinator.store.close()


async def run_refresh() -> bool:
    """Run one price refresh.

    Returns:
        False if the run failed as a whole
    """
    config = get_config()
    setup_logging(config.logging)

    coordinator = build_coordinator(config, get_settings())
    try:
        summary = await coordinator.run()
    except RefreshError as e:
        logger.error(str(e))
        return False
    finally:
        coordinator.store.close()

    logger.info(f"Refresh summary: {summary.to_dict()}")
    return True


async def track_product(url: str, email: str, target_price=None) -> bool:
    """Subscribe an email to a product."""
    config = get_config()
    setup_logging(config.logging)

    coordinator = build_coordinator(config, get_settings())
    try:
        product = await coordinator.track(url, email, target_price)
    except ValueError as e:
        logger.error(str(e))
        return False
    finally:
        coordinator.store.close()

    logger.info(f"Tracking '{product.title}' at {product.currency}{product.current_price}")
    return True


def run_api():
    """Run the FastAPI server."""
    import uvicorn

    config = get_config()
    setup_logging(config.logging)

    logger.info("=" * 80)
    logger.info("Price Tracker API - Starting")
    logger.info("=" * 80)

    uvicorn.run(
        "price_tracker.api.main:create_app",
        factory=True,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
    )


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Price Tracker")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("refresh", help="Refresh all tracked products once")
    subparsers.add_parser("scheduler", help="Run the refresh scheduler")
    subparsers.add_parser("api", help="Run the API server")

    track_parser = subparsers.add_parser("track", help="Subscribe an email to a product")
    track_parser.add_argument("url", help="Product page URL")
    track_parser.add_argument("email", help="Subscriber email address")
    track_parser.add_argument(
        "--target-price", type=float, default=None, help="Notify when price reaches this"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "refresh":
            ok = asyncio.run(run_refresh())
        elif args.command == "track":
            ok = asyncio.run(track_product(args.url, args.email, args.target_price))
        elif args.command == "scheduler":
            ok = asyncio.run(run_scheduler())
        else:
            run_api()
            ok = True
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        ok = True
    except Exception as e:
        logger.exception(f"Error: {e}")
        sys.exit(1)

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
