#!/usr/bin/env python3
"""Initialize the database, create tables and optionally register a trader to follow.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --add-trader "Some Trader" 4012345678901234567
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from sqlalchemy.dialects.postgresql import insert

from tradewise.storage.database import TraderWatchTable, init_database


async def main(args: argparse.Namespace):
    print("Initializing database...")
    db = await init_database()
    print("Database initialized successfully!")
    print("Tables created: signals, copy_orders, trader_watches")

    if args.add_trader:
        name, portfolio_id = args.add_trader
        async with db.session() as session:
            stmt = (
                insert(TraderWatchTable)
                .values(name=name, portfolio_id=portfolio_id, enabled=True)
                .on_conflict_do_nothing(index_elements=["portfolio_id"])
            )
            result = await session.execute(stmt)
        if result.rowcount:
            print(f"Following trader {name} ({portfolio_id})")
        else:
            print(f"Trader with portfolio {portfolio_id} already registered")

    await db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the TradeWise database")
    parser.add_argument(
        "--add-trader",
        nargs=2,
        metavar=("NAME", "PORTFOLIO_ID"),
        help="Register a lead portfolio to monitor",
    )
    asyncio.run(main(parser.parse_args()))
