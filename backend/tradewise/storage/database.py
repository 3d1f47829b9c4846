"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from tradewise.config import get_settings

Base = declarative_base()


class SignalTable(Base):
    """Signals accepted by the filter, with their lifecycle outcome."""

    __tablename__ = "signals"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    symbol = Column(String(20), nullable=False)
    direction = Column(String(4), nullable=False)  # BUY | SELL
    origin = Column(String(200), nullable=False)
    entry_price = Column(Numeric(20, 8), nullable=False)
    stop_loss = Column(Numeric(20, 8), nullable=False)
    take_profit = Column(Numeric(20, 8), nullable=False)
    score = Column(Integer, nullable=False)
    tier = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False)
    confidence = Column(Float, default=0)
    risk_reward = Column(Float, default=0)
    regime = Column(String(20), default="")
    reason = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)
    outcome_at = Column(DateTime(timezone=True), nullable=True)
    final_price = Column(Numeric(20, 8), nullable=True)
    pnl_percent = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_signals_symbol_created", "symbol", "created_at"),
        Index("idx_signals_status", "status"),
        Index("idx_signals_tier_created", "tier", "created_at"),
    )


class CopyOrderTable(Base):
    """Orders ingested from followed traders. Append-only."""

    __tablename__ = "copy_orders"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    trader_id = Column(BigInteger, nullable=False)
    exchange = Column(String(20), nullable=False)
    order_id = Column(String(128), nullable=False)
    symbol = Column(String(20), nullable=False)
    side = Column(String(10), nullable=False)
    position_side = Column(String(10), nullable=False)
    executed_qty = Column(Numeric(30, 8), nullable=False)
    avg_price = Column(Numeric(20, 8), nullable=False)
    total_value = Column(Numeric(30, 8), nullable=False)
    realized_pnl = Column(Numeric(30, 8), nullable=True)
    action_type = Column(String(20), nullable=False)
    order_time = Column(DateTime(timezone=True), nullable=False)
    update_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_copy_orders_exchange_order", "exchange", "order_id", unique=True),
        Index("idx_copy_orders_trader_time", "trader_id", "order_time"),
    )


class TraderWatchTable(Base):
    """Followed traders and their running order statistics."""

    __tablename__ = "trader_watches"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    portfolio_id = Column(String(64), nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=True)
    monitor_interval_seconds = Column(Integer, nullable=False, default=60)
    today_order_count = Column(Integer, nullable=False, default=0)
    total_order_count = Column(Integer, nullable=False, default=0)
    last_order_date = Column(Date, nullable=True)
    last_order_time = Column(DateTime(timezone=True), nullable=True)
    last_check_time = Column(DateTime(timezone=True), nullable=True)


# Tables owned by the account/subscription service. Read-only here and never
# created by create_tables().
external_metadata = MetaData()

users_table = Table(
    "users",
    external_metadata,
    Column("id", BigInteger, primary_key=True),
    Column("email", String(255), nullable=False),
    Column("enabled", Boolean, nullable=False),
    Column("email_verified", Boolean, nullable=False),
)

trader_subscriptions_table = Table(
    "trader_subscriptions",
    external_metadata,
    Column("user_id", BigInteger, nullable=False),
    Column("trader_id", BigInteger, nullable=False),
    Column("email_enabled", Boolean, nullable=False),
)


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=10,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=30,
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create the pipeline's own tables (development convenience, not migrations)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session committed on success, rolled back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
