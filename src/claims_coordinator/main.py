from __future__ import annotations

import asyncio
import logging

from .config import load_settings
from .service import ClaimsCoordinator


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    logging.getLogger(__name__).info(
        "Starting claims coordinator for %s on %s", settings.account, settings.network
    )
    coordinator = ClaimsCoordinator(settings)
    await coordinator.run()


def main() -> None:
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
