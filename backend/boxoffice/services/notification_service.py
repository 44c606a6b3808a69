"""
Fire-and-forget notifications: ticket emails and audit-log writes.

Jobs go through a bounded asyncio.Queue drained by one background worker.
`submit` never blocks the request: when the queue is full the job is
dropped with a warning. A failing job is logged and counted, never raised;
the order it reports on is already committed.
"""

import asyncio
import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger, log_suppressed
from boxoffice.core.metrics import record_notification
from boxoffice.models.audit import AuditLog

logger = get_logger(__name__)

Job = Callable[[], Awaitable[None]]


class NotificationDispatcher:
    def __init__(self, maxsize: Optional[int] = None):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or get_settings().NOTIFICATION_QUEUE_SIZE)
        self.worker_task: Optional[asyncio.Task] = None

    def submit(self, kind: str, job: Job) -> bool:
        try:
            self.queue.put_nowait((kind, job))
        except asyncio.QueueFull:
            record_notification(kind, "dropped")
            logger.warning("notification_dropped", kind=kind, queue_size=self.queue.qsize())
            return False
        return True

    async def _run(self, kind: str, job: Job) -> None:
        try:
            await job()
            record_notification(kind, "sent")
        except Exception as e:
            record_notification(kind, "failed")
            log_suppressed(logger, "notification_failed", e, kind=kind)

    async def _worker(self) -> None:
        while True:
            kind, job = await self.queue.get()
            try:
                await self._run(kind, job)
            finally:
                self.queue.task_done()

    def start(self) -> None:
        if self.worker_task is None:
            self.worker_task = asyncio.create_task(self._worker())
            logger.info("notification_worker_started", maxsize=self.queue.maxsize)

    async def drain(self) -> int:
        """Run queued jobs inline. Used on shutdown and in tests."""
        ran = 0
        while not self.queue.empty():
            kind, job = self.queue.get_nowait()
            try:
                await self._run(kind, job)
            finally:
                self.queue.task_done()
            ran += 1
        return ran

    async def stop(self) -> None:
        if self.worker_task is not None:
            self.worker_task.cancel()
            try:
                await self.worker_task
            except asyncio.CancelledError:
                pass
            self.worker_task = None
        await self.drain()
        logger.info("notification_worker_stopped")


# --- email ---------------------------------------------------------------


@dataclass
class EmailMessage:
    to: str
    subject: str
    text: str
    attachments: list = field(default_factory=list)
    data: dict = field(default_factory=dict)


class EmailClient:
    """Posts messages to the configured HTTP email API."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
        enabled: Optional[bool] = None,
    ):
        settings = get_settings()
        self.api_url = api_url or settings.EMAIL_API_URL
        self.api_key = api_key or settings.EMAIL_API_KEY
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS
        self.enabled = settings.EMAIL_ENABLED if enabled is None else enabled

    async def send(self, message: EmailMessage) -> bool:
        if not self.enabled or not self.api_url:
            logger.info("email_skipped", to=message.to, subject=message.subject)
            return False

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "from": self.sender,
            "to": message.to,
            "subject": message.subject,
            "text": message.text,
            "attachments": message.attachments,
            "data": message.data,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
        logger.info("email_sent", to=message.to, subject=message.subject)
        return True


def _ics_time(value: datetime) -> str:
    return value.strftime("%Y%m%dT%H%M%SZ")


def _ics_escape(value: str) -> str:
    return (
        (value or "")
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics(
    order_id: str,
    event_id: str,
    title: str,
    start: datetime,
    end: Optional[datetime],
    location: Optional[str] = None,
    description: Optional[str] = None,
    stamp: Optional[datetime] = None,
) -> str:
    """Calendar invite with reminders a day and an hour before the event."""
    end = end or start
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Boxoffice//Tickets//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{order_id}-{event_id}@boxoffice",
        f"DTSTAMP:{_ics_time(stamp or start)}",
        f"DTSTART:{_ics_time(start)}",
        f"DTEND:{_ics_time(end)}",
        f"SUMMARY:{_ics_escape(title)}",
        f"DESCRIPTION:{_ics_escape(description or f'Your tickets for {title}')}",
        f"LOCATION:{_ics_escape(location or '')}",
        "STATUS:CONFIRMED",
    ]
    for trigger in ("-PT24H", "-PT1H"):
        lines += [
            "BEGIN:VALARM",
            f"TRIGGER:{trigger}",
            "ACTION:DISPLAY",
            f"DESCRIPTION:Reminder: {_ics_escape(title)}",
            "END:VALARM",
        ]
    lines += ["END:VEVENT", "END:VCALENDAR"]
    return "\r\n".join(lines) + "\r\n"


# --- notifier ------------------------------------------------------------


class Notifier:
    """Builds notification jobs from committed state and hands them to the dispatcher."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        email_client: EmailClient,
        session_factory: async_sessionmaker,
        frontend_url: Optional[str] = None,
    ):
        self.dispatcher = dispatcher
        self.email_client = email_client
        self.session_factory = session_factory
        self.frontend_url = frontend_url or get_settings().FRONTEND_URL

    def audit(self, entries: list) -> bool:
        """Queue audit rows; each entry is a dict of AuditLog column values."""
        if not entries:
            return False
        rows = [dict(entry) for entry in entries]

        async def job():
            async with self.session_factory() as session:
                session.add_all([AuditLog(**row) for row in rows])
                await session.commit()

        return self.dispatcher.submit("audit", job)

    def order_confirmation(self, to: Optional[str], order: dict, tickets: list, events: list) -> bool:
        """
        Ticket email: one QR payload per ticket and an ICS invite per event.
        QR images are rendered by the email transport from the payload text.
        """
        if not to:
            return False

        attachments = []
        for event in events:
            ics = build_ics(
                order["id"],
                event["id"],
                event["title"],
                event["start_date"],
                event.get("end_date"),
                location=event.get("location"),
                stamp=order.get("created_at"),
            )
            attachments.append(
                {
                    "filename": f"event-{event['id']}.ics",
                    "contentType": "text/calendar",
                    "content": base64.b64encode(ics.encode("utf-8")).decode("ascii"),
                }
            )

        lines = [f"Thank you for your order {order['id']}."]
        if order.get("confirmation_code"):
            lines.append(f"Confirmation code: {order['confirmation_code']}")
        lines.append(f"Total: {order['total_amount']}  Paid: {order['amount_paid']}  Balance: {order['balance_due']}")
        for ticket in tickets:
            lines.append(f"{ticket['ticket_number']}  {ticket.get('item_title') or ''}  {ticket.get('seat_number') or ''}")

        message = EmailMessage(
            to=to,
            subject="Your tickets",
            text="\n".join(lines),
            attachments=attachments,
            data={
                "order": {k: str(v) if v is not None else None for k, v in order.items()},
                "qrCodes": [
                    {"ticketNumber": t["ticket_number"], "data": t["qr_code_data"]}
                    for t in tickets
                    if t.get("qr_code_data")
                ],
            },
        )

        async def job():
            await self.email_client.send(message)

        return self.dispatcher.submit("email", job)

    def guest_access_link(self, to: str, confirmation_code: str) -> bool:
        link = f"{self.frontend_url.rstrip('/')}/guest/tickets?email={to}&code={confirmation_code}"
        message = EmailMessage(
            to=to,
            subject="Access your tickets",
            text=f"Your confirmation code is {confirmation_code}.\nView your tickets: {link}",
            data={"confirmationCode": confirmation_code, "link": link},
        )

        async def job():
            await self.email_client.send(message)

        return self.dispatcher.submit("email", job)


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher; its worker is started by the app lifespan."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher


def reset_dispatcher() -> None:
    global _dispatcher
    _dispatcher = None
