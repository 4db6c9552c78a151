"""Fire-and-forget notification dispatch.

Request handlers publish Notification objects onto a bounded in-memory queue and return
immediately; a daemon worker thread renders and delivers them through a sender (SMS gateway
or log-only). Delivery errors are logged and dropped, never retried or surfaced.
"""
from __future__ import annotations
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

KIND_TICKET_CREATED = 'ticket_created'
KIND_TICKET_RECEIPT = 'ticket_receipt'
KIND_CATEGORY_CHANGED = 'category_changed'
KIND_TECHNICIAN_ASSIGNED = 'technician_assigned'
KIND_TICKET_RESOLVED = 'ticket_resolved'
KIND_TICKET_REMINDER = 'ticket_reminder'


@dataclass(frozen=True)
class Notification:
    kind: str
    recipients: Tuple[str, ...]
    context: Dict[str, Any] = field(default_factory=dict)


def render_message(n: Notification) -> str:
    c = n.context
    if n.kind == KIND_TICKET_CREATED:
        return (f"New Ticket Created\nTicket ID: {c.get('ticketCode')}\nClient: {c.get('clientName')}\n"
                f"Station: {c.get('station')}\nCategory: {c.get('category')}\n\nPlease check the system for details.")
    if n.kind == KIND_TICKET_RECEIPT:
        care = c.get('customerCareNumber')
        tail = f"\nFor inquiries: {care}" if care else ''
        return (f"Dear {c.get('clientName')},\n\nYour ticket {c.get('ticketCode')} has been received.\n"
                f"Station: {c.get('station')}\nCategory: {c.get('category')}\n\nWe will contact you shortly.{tail}\n\nThank you!")
    if n.kind == KIND_CATEGORY_CHANGED:
        return (f"Ticket Category Changed\nTicket ID: {c.get('ticketCode')}\nClient: {c.get('clientName')}\n"
                f"From: {c.get('previousCategory') or '-'}\nTo: {c.get('newCategory')}")
    if n.kind == KIND_TECHNICIAN_ASSIGNED:
        return (f"Hello {c.get('technician')},\nYou have been assigned ticket {c.get('ticketCode')}.\n"
                f"Client: {c.get('clientName')} ({c.get('clientNumber') or '-'})\nStation: {c.get('station')}\n"
                f"Category: {c.get('category')}")
    if n.kind == KIND_TICKET_RESOLVED:
        return (f"Dear {c.get('clientName')},\n\nYour ticket {c.get('ticketCode')} has been {c.get('status')}.\n"
                f"Thank you for your patience.")
    if n.kind == KIND_TICKET_REMINDER:
        return (f"Ticket Reminder\nTicket ID: {c.get('ticketCode')}\nClient: {c.get('clientName')}\n"
                f"Station: {c.get('station')}\nCategory: {c.get('category')}\nStatus: Still Open\n"
                f"Open for: {round(c.get('hoursOpen') or 0)} hours\n\nPlease follow up on this ticket.")
    raise ValueError(f'Unknown notification kind {n.kind}')


class LogSender:
    """Sender used when no SMS gateway is configured."""

    def send(self, recipients: List[str], message: str):
        logger.info('Notification (log only) to %s: %s', ','.join(recipients), message.replace('\n', ' | '))


class SmsSender:
    """Form-encoded POST to an HTTP SMS gateway; raises on transport or gateway errors."""

    def __init__(self, url: str, username: str, password: str, sender_id: str, timeout: float = 10.0):
        self.url = url
        self.username = username
        self.password = password
        self.sender_id = sender_id
        self.timeout = timeout
        self._http = requests.Session()

    @staticmethod
    def format_number(number: str) -> str:
        return number.strip().replace('+', '').replace(' ', '')

    def send(self, recipients: List[str], message: str):
        form = {
            'userid': self.username,
            'password': self.password,
            'sendMethod': 'quick',
            'mobile': ','.join(self.format_number(r) for r in recipients),
            'msg': message,
            'senderid': self.sender_id,
            'msgType': 'text',
            'duplicatecheck': 'true',
            'output': 'json',
        }
        resp = self._http.post(self.url, data=form, timeout=self.timeout, headers={'cache-control': 'no-cache'})
        resp.raise_for_status()
        return resp.json()


class NotificationDispatcher:
    def __init__(self, sender, *, max_queue: int = 1000, start: bool = True):
        self.sender = sender
        self._q: "queue.Queue[Notification]" = queue.Queue(maxsize=max_queue)
        self._thread = threading.Thread(target=self._run, daemon=True, name='notification-dispatcher')
        if start:
            self._thread.start()

    def publish(self, notification: Notification) -> bool:
        """Enqueue without blocking. Returns False when the message was dropped."""
        try:
            self._q.put_nowait(notification)
            return True
        except queue.Full:
            logger.warning('Notification queue full, dropping %s for %s', notification.kind, notification.recipients)
            return False

    def join(self):
        """Block until every queued notification has been handled."""
        self._q.join()

    def deliver(self, notification: Notification):
        try:
            self.sender.send(list(notification.recipients), render_message(notification))
            logger.info('Delivered %s notification to %s', notification.kind, ','.join(notification.recipients))
        except Exception:
            logger.exception('Failed to deliver %s notification to %s', notification.kind, notification.recipients)

    def _run(self):
        while True:
            notification = self._q.get()
            try:
                self.deliver(notification)
            finally:
                self._q.task_done()


def notify(outbox, kind: str, recipients: Iterable[Optional[str]], **context) -> bool:
    """Publish a notification; never raises so callers can treat it as fire-and-forget."""
    targets = tuple(r.strip() for r in recipients if r and r.strip())
    if not targets:
        logger.warning('No recipients for %s notification (%s)', kind, context.get('ticketCode'))
        return False
    try:
        return outbox.publish(Notification(kind=kind, recipients=targets, context=context))
    except Exception:
        logger.exception('Failed to publish %s notification', kind)
        return False


def build_dispatcher(config) -> NotificationDispatcher:
    if config.get('SMS_API_URL'):
        sender = SmsSender(
            config['SMS_API_URL'],
            config.get('SMS_USERNAME', ''),
            config.get('SMS_PASSWORD', ''),
            config.get('SMS_SENDER_ID', ''),
            timeout=config.get('SMS_TIMEOUT', 10.0),
        )
    else:
        sender = LogSender()
    return NotificationDispatcher(sender, max_queue=config.get('NOTIFIER_QUEUE_SIZE', 1000))

__all__ = [
    'Notification', 'NotificationDispatcher', 'SmsSender', 'LogSender', 'notify', 'render_message',
    'build_dispatcher',
]
