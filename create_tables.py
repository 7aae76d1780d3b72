"""
create_tables.py
----------------
Create the order bot's tables (worlds, bindings, current-world pointers,
live order rows, order history) in DATABASE_URL.

`--reset` drops every table first, which also wipes all orders. Local
development only.

Usage:
    python create_tables.py
    python create_tables.py --reset
"""

import argparse
import asyncio

from orderbot.core.logging import configure_logging, get_logger
from orderbot.db.session import engine
from orderbot.models import Base  # Imports all models so metadata is populated

logger = get_logger(__name__)


async def create_all_tables(reset: bool = False) -> None:
    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
            logger.warning("All tables dropped", url=engine.url.render_as_string(hide_password=True))
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Tables created", tables=sorted(Base.metadata.tables))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the order bot tables.")
    parser.add_argument("--reset", action="store_true", help="drop existing tables first")
    args = parser.parse_args()
    configure_logging()
    asyncio.run(create_all_tables(reset=args.reset))
