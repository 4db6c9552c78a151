import logging
import pytest
from backoffice.services.notifier import (
    Notification, NotificationDispatcher, SmsSender, LogSender, notify, render_message, build_dispatcher,
    KIND_TICKET_CREATED, KIND_TECHNICIAN_ASSIGNED, KIND_TICKET_REMINDER,
)
from tests.test_lifecycle_helpers import RecordingOutbox


class CollectingSender:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, recipients, message):
        if self.fail:
            raise RuntimeError('gateway down')
        self.sent.append((recipients, message))


def test_render_messages_mention_ticket():
    msg = render_message(Notification(KIND_TICKET_CREATED, ('1',), {'ticketCode': 'TKT-007', 'clientName': 'Jane',
                                                                      'station': 'Kahawa', 'category': 'Fiber'}))
    assert 'TKT-007' in msg and 'Jane' in msg
    msg = render_message(Notification(KIND_TICKET_REMINDER, ('1',), {'ticketCode': 'TKT-007', 'hoursOpen': 25.6}))
    assert 'Open for: 26 hours' in msg
    with pytest.raises(ValueError):
        render_message(Notification('mystery', ('1',), {}))


def test_worker_delivers_published_notifications():
    sender = CollectingSender()
    dispatcher = NotificationDispatcher(sender, max_queue=10)
    assert dispatcher.publish(Notification(KIND_TECHNICIAN_ASSIGNED, ('+254722000001',),
                                           {'technician': 'Alice', 'ticketCode': 'TKT-001'}))
    dispatcher.join()
    assert len(sender.sent) == 1
    recipients, message = sender.sent[0]
    assert recipients == ['+254722000001']
    assert 'Hello Alice' in message


def test_delivery_failure_is_logged_and_swallowed(caplog):
    dispatcher = NotificationDispatcher(CollectingSender(fail=True), start=False)
    with caplog.at_level(logging.ERROR, logger='backoffice.services.notifier'):
        dispatcher.deliver(Notification(KIND_TICKET_CREATED, ('1',), {'ticketCode': 'TKT-001'}))
    assert any('Failed to deliver' in r.getMessage() for r in caplog.records)


def test_full_queue_drops_without_blocking():
    dispatcher = NotificationDispatcher(CollectingSender(), max_queue=1, start=False)
    n = Notification(KIND_TICKET_CREATED, ('1',), {})
    assert dispatcher.publish(n) is True
    assert dispatcher.publish(n) is False


def test_notify_strips_blank_recipients():
    outbox = RecordingOutbox()
    assert notify(outbox, KIND_TICKET_CREATED, [None, '  ', ''], ticketCode='TKT-001') is False
    assert outbox.published == []
    assert notify(outbox, KIND_TICKET_CREATED, [' +254700000001 ', None], ticketCode='TKT-001') is True
    assert outbox.published[0].recipients == ('+254700000001',)


def test_sms_sender_posts_gateway_form(monkeypatch):
    captured = {}

    class FakeResponse:
        def raise_for_status(self):
            return None

        def json(self):
            return {'status': 'success'}

    def fake_post(url, data=None, timeout=None, headers=None):
        captured.update(url=url, data=data, timeout=timeout)
        return FakeResponse()

    sender = SmsSender('https://sms.example.test/send', 'user', 'secret', 'ISP', timeout=3)
    monkeypatch.setattr(sender._http, 'post', fake_post)
    assert sender.send(['+254 700 000 001', '254700000002'], 'hello') == {'status': 'success'}
    assert captured['url'] == 'https://sms.example.test/send'
    assert captured['timeout'] == 3
    assert captured['data']['mobile'] == '254700000001,254700000002'
    assert captured['data']['senderid'] == 'ISP'
    assert captured['data']['msg'] == 'hello'


def test_build_dispatcher_picks_sender():
    assert isinstance(build_dispatcher({'SMS_API_URL': ''}).sender, LogSender)
    d = build_dispatcher({'SMS_API_URL': 'https://sms.example.test/send', 'SMS_USERNAME': 'u'})
    assert isinstance(d.sender, SmsSender)
