"""
SnipWire entry point
Checks the Snipcart connection and prints a dashboard summary for the last 30 days
"""

import asyncio
from datetime import date, timedelta

from loguru import logger

from snipwire.services import DashboardAggregator, SnipRESTError, SnipREST
from snipwire.services.dashboard import LEG_NAMES
from snipwire.settings import global_settings


async def main() -> None:
    environment = "LIVE" if global_settings.is_live else "TEST"
    logger.info(f"Starting SnipWire ({environment} environment)...")

    async with SnipREST(global_settings) as sniprest:
        try:
            status = await sniprest.test_connection()
            if status is not True:
                logger.error(f"Snipcart connection failed: {status}")
                return
            logger.info("Snipcart connection established")

            settings = await sniprest.get_settings()
            currency = settings["settings/general"].content.get("currency", "eur")

            end = date.today()
            start = end - timedelta(days=30)
            aggregator = DashboardAggregator(sniprest)
            data = await aggregator.get_dashboard_data(
                start.isoformat(), end.isoformat(), currency
            )

            for name in LEG_NAMES:
                result = data.leg(name)
                status_text = "ok" if result.ok else f"failed ({result.error})"
                logger.info(f"{name}: HTTP {result.http_code} {status_text}")

            if data.degraded:
                logger.warning("Dashboard data fetched in sequential mode")

        except SnipRESTError as e:
            logger.error(f"SnipWire error: {e}")

    logger.info("SnipWire stopped")


if __name__ == "__main__":
    asyncio.run(main())
