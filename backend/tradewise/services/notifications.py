"""Notification outbox and mail delivery.

Writers call ``NotificationDispatcher.enqueue`` after their record is
persisted; a single consumer task drains the queue and delivers through a
MailSender with its own retry policy. A failed delivery is logged and
dropped, it never touches the stored signal or order.
"""

import asyncio
import logging
import smtplib
from collections import Counter
from dataclasses import dataclass
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterable, Protocol

from signal_engine.models import CopyOrder, ScoredSignal, Signal
from tradewise.errors import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    recipients: tuple[str, ...]
    subject: str
    body: str
    kind: str = "generic"


class MailSender(Protocol):
    async def send(self, recipients: list[str], subject: str, body: str) -> None:
        ...


class SmtpMailSender:
    """Sends plain-text mail over SMTP (STARTTLS + login when configured)."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        mail_from: str = "tradewise@localhost",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.mail_from = mail_from
        self.timeout = timeout

    def _send_sync(self, recipients: list[str], subject: str, body: str) -> None:
        msg = MIMEMultipart()
        msg["From"] = self.mail_from
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.mail_from, recipients, msg.as_string())

    async def send(self, recipients: list[str], subject: str, body: str) -> None:
        """
        Raises:
            NotificationError: On any SMTP or socket failure.
        """
        try:
            await asyncio.to_thread(self._send_sync, recipients, subject, body)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP send to {len(recipients)} recipient(s) failed: {e}") from e


class LogMailSender:
    """Stand-in sender used when no SMTP host is configured; writes mail to the log."""

    async def send(self, recipients: list[str], subject: str, body: str) -> None:
        logger.info(f"[mail disabled] to={recipients} subject={subject!r}")


class NotificationDispatcher:
    """Bounded in-memory outbox with one delivery worker."""

    def __init__(
        self,
        sender: MailSender,
        retry_attempts: int = 3,
        retry_backoff: float = 2.0,
        max_queue: int = 1000,
    ):
        self.sender = sender
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=max_queue)
        self._worker: asyncio.Task | None = None
        self.counts: Counter[str] = Counter()

    def enqueue(self, notification: Notification) -> bool:
        """Queue a notification without waiting. Returns False if it was dropped."""
        if not notification.recipients:
            self.counts["skipped_no_recipients"] += 1
            return False
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.counts["dropped"] += 1
            logger.warning(f"Notification outbox full, dropping: {notification.subject}")
            return False
        self.counts["enqueued"] += 1
        return True

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self.run(), name="notification-dispatcher")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Give queued mail a moment to go out, then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Stopping with {self._queue.qsize()} notification(s) undelivered")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self.deliver(notification)
            except Exception:
                logger.exception("Unexpected error delivering notification")
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until everything queued so far has been handled."""
        await self._queue.join()

    async def deliver(self, notification: Notification) -> bool:
        """Send with retries. Returns False once every attempt failed."""
        recipients = list(notification.recipients)
        for attempt in range(1, self.retry_attempts + 1):
            try:
                await self.sender.send(recipients, notification.subject, notification.body)
                self.counts["sent"] += 1
                logger.info(f"Sent '{notification.subject}' to {len(recipients)} recipient(s)")
                return True
            except Exception as e:
                logger.warning(
                    f"Notification attempt {attempt}/{self.retry_attempts} failed "
                    f"for '{notification.subject}': {e}"
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_backoff * (2 ** (attempt - 1)))

        self.counts["failed"] += 1
        logger.error(f"Giving up on notification '{notification.subject}'")
        return False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def stats(self) -> dict:
        return {"pending": self.pending, **self.counts}


# -------------------------------------------------------------------------
# Rendering
# -------------------------------------------------------------------------

def render_signal_alert(signal: Signal, recipients: Iterable[str]) -> Notification:
    subject = f"[TradeWise] {signal.tier.value} {signal.direction.value} {signal.symbol}"
    body = "\n".join(
        [
            f"Symbol:       {signal.symbol}",
            f"Direction:    {signal.direction.value}",
            f"Tier:         {signal.tier.value} (score {signal.score})",
            f"Entry:        {signal.entry_price}",
            f"Stop loss:    {signal.stop_loss}",
            f"Take profit:  {signal.take_profit}",
            f"Risk/reward:  {signal.risk_reward:.2f}",
            f"Confidence:   {signal.confidence:.2f}",
            f"Models:       {signal.origin}",
            f"Regime:       {signal.regime}",
            f"Created:      {signal.created_at.isoformat()}",
            "",
            signal.reason,
        ]
    )
    return Notification(tuple(recipients), subject, body, kind="signal")


def render_order_alert(order: CopyOrder, trader_name: str, recipients: Iterable[str]) -> Notification:
    subject = f"[Copy-trade alert] {trader_name} new order - {order.symbol} {order.action_type.value}"
    lines = [
        f"Trader:       {trader_name}",
        f"Symbol:       {order.symbol}",
        f"Action:       {order.action_type.value} ({order.side}/{order.position_side})",
        f"Avg price:    {order.avg_price}",
        f"Quantity:     {order.executed_qty}",
        f"Value:        {order.total_value}",
        f"Order time:   {order.order_time.isoformat()}",
    ]
    if order.realized_pnl is not None:
        lines.append(f"Realized PnL: {order.realized_pnl}")
    return Notification(tuple(recipients), subject, "\n".join(lines), kind="order")


def render_daily_summary(signals: list[ScoredSignal], day: date, recipients: Iterable[str]) -> Notification:
    subject = f"[TradeWise] Daily summary {day.isoformat()}: {len(signals)} low-priority signal(s)"
    lines = [f"Low-priority signals accepted on {day.isoformat()}:", ""]
    for s in sorted(signals, key=lambda s: s.created_at):
        lines.append(
            f"{s.created_at:%H:%M} {s.symbol:<10} {s.direction.value:<4} score={s.score} "
            f"entry={s.entry_price} sl={s.stop_loss} tp={s.take_profit}"
        )
    return Notification(tuple(recipients), subject, "\n".join(lines), kind="summary")
