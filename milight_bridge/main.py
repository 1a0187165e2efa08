import asyncio
import signal
import sys
from contextlib import AsyncExitStack

from loguru import logger

from milight_bridge.core.config import (
    DEBUG,
    HTTP_TIMEOUT_SECONDS,
    MILIGHT_HTTP_PASSWORD,
    MILIGHT_HTTP_USERNAME,
    MILIGHT_HUB_HOST,
)
from milight_bridge.lights.bridge import LoggingControllerBridge
from milight_bridge.lights.hub import HubClient
from milight_bridge.lights.platform import MiLightPlatform
from milight_bridge.lights.transport import TransportDispatcher


async def main():
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if DEBUG else "INFO")

    hub = HubClient(
        MILIGHT_HUB_HOST,
        username=MILIGHT_HTTP_USERNAME,
        password=MILIGHT_HTTP_PASSWORD,
        timeout=HTTP_TIMEOUT_SECONDS,
    )
    dispatcher = TransportDispatcher(hub)
    platform = MiLightPlatform(LoggingControllerBridge(), dispatcher)
    logger.info(f"Starting MiLight bridge for hub at {MILIGHT_HUB_HOST}")

    # Exit stack for managing multiple context managers
    async with AsyncExitStack() as exit_stack:
        await exit_stack.enter_async_context(hub)
        # Closes the broker before the hub session
        exit_stack.push_async_callback(platform.shutdown)

        await exit_stack.enter_async_context(platform.poller)
        logger.debug("Started settings poller")

        # Setup signal handling for clean shutdown
        shutdown_requested = asyncio.Event()
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_requested.set)

        await shutdown_requested.wait()
        logger.info("Shutdown signal received")

    logger.info(f"Tracked {len(platform.devices)} lights")
    logger.info(f"Processed {platform.messages_processed} MQTT messages")


if __name__ == "__main__":
    asyncio.run(main())
