"""
nossence.bot.__main__ — Entry point for ``python -m nossence.bot``
===================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Build the relay transport named in config.yaml.
5. Create the NossenceBot and run it until SIGINT / SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

from nossence.bot.core import NossenceBot
from nossence.bot.transport import load_transport
from nossence.config import load_config
from nossence.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("nossence")


async def _run(bot: NossenceBot) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, bot.request_stop)
    await bot.start()


def main() -> None:
    """Bootstrap and run the nossence bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    bot_secret = os.getenv("BOT_SECRET_KEY")
    if not bot_secret or bot_secret == "your-bot-private-key-hex-here":
        logger.critical(
            "BOT_SECRET_KEY is not set.  "
            "Copy .env.example → .env and paste the bot's private key."
        )
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — %d relays", len(cfg.relays))

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Transport.
    transport = load_transport(cfg.transport, cfg.relays)

    # 5. Bot (blocks until a stop signal or the mention stream ends).
    bot = NossenceBot(cfg=cfg, engine=engine, transport=transport, bot_secret=bot_secret)
    logger.info("Starting nossence bot…")
    asyncio.run(_run(bot))


if __name__ == "__main__":
    main()
