"""Read-only lookup of who follows a trader by email.

The users and trader_subscriptions tables belong to the account service;
this module only reads them.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from tradewise.errors import PersistenceError
from tradewise.storage.database import get_database, trader_subscriptions_table, users_table


class SubscriberDirectory:
    """Resolves notifiable recipients (enabled, email-verified, opted in) for a trader."""

    async def recipients_for(self, trader_id: int) -> list[str]:
        users = users_table
        subs = trader_subscriptions_table
        stmt = (
            select(users.c.email)
            .select_from(subs.join(users, users.c.id == subs.c.user_id))
            .where(
                subs.c.trader_id == trader_id,
                subs.c.email_enabled.is_(True),
                users.c.enabled.is_(True),
                users.c.email_verified.is_(True),
            )
            .order_by(users.c.email)
            .distinct()
        )
        try:
            async with get_database().session() as session:
                result = await session.execute(stmt)
                return [email for (email,) in result.all() if email]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to look up subscribers of trader {trader_id}: {e}") from e
