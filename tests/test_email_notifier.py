import asyncio
import smtplib

import pytest

from price_tracker.alerts import email as email_module
from price_tracker.alerts.email import EmailContent, EmailNotifier, ProductInfo
from price_tracker.scoring import NotificationType

PRODUCT = ProductInfo(
    title="Wireless Noise Cancelling Headphones",
    url="https://www.amazon.com/dp/B0HEADPHONES",
    current_price=199.0,
)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.logged_in = user

    def send_message(self, msg, to_addrs=None):
        self.messages.append((msg, to_addrs))


@pytest.fixture
def notifier():
    return EmailNotifier("smtp.test", 587, "alerts@test", "secret")


@pytest.mark.parametrize(
    "kind, subject_prefix",
    [
        (NotificationType.WELCOME, "Welcome to Price Tracking for"),
        (NotificationType.LOWEST_EVER, "Lowest Price Alert for"),
        (NotificationType.PRICE_DROP, "Price Drop Alert for"),
        (NotificationType.THRESHOLD_MET, "Discount Alert for"),
    ],
)
def test_render_subjects(notifier, kind, subject_prefix):
    content = notifier.render(PRODUCT, kind)

    assert content.subject.startswith(subject_prefix)
    assert content.subject.endswith("Wireless Noise Cance...")
    assert PRODUCT.url in content.body


def test_render_back_in_stock(notifier):
    content = notifier.render(PRODUCT, NotificationType.BACK_IN_STOCK)

    assert content.subject == "Wireless Noise Cance... is now back in stock!"


def test_render_includes_price(notifier):
    content = notifier.render(PRODUCT, NotificationType.LOWEST_EVER)

    assert "$199.00" in content.body


def test_render_escapes_title(notifier):
    product = ProductInfo(title="<b>Bold</b>", url="https://example.test/p")

    content = notifier.render(product, NotificationType.PRICE_DROP)

    assert "<b>Bold</b>" not in content.body
    assert "&lt;b&gt;Bold&lt;/b&gt;" in content.body


def test_render_none_is_rejected(notifier):
    with pytest.raises(ValueError):
        notifier.render(PRODUCT, NotificationType.NONE)


def test_send_without_recipients(notifier):
    assert asyncio.run(notifier.send(EmailContent("s", "b"), [])) is False


def test_send_delivers_one_message_to_all_recipients(notifier, monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    recipients = ["a@example.com", "b@example.com"]

    sent = asyncio.run(notifier.send(EmailContent("Subject", "<p>Body</p>"), recipients))

    assert sent is True
    assert len(FakeSMTP.instances) == 1
    server = FakeSMTP.instances[0]
    assert server.logged_in == "alerts@test"
    msg, to_addrs = server.messages[0]
    assert to_addrs == recipients
    assert msg["Subject"] == "Subject"
    assert msg["From"] == "alerts@test"


def test_send_failure_returns_false(notifier, monkeypatch):
    class RefusingSMTP(FakeSMTP):
        def send_message(self, msg, to_addrs=None):
            raise smtplib.SMTPRecipientsRefused({})

    monkeypatch.setattr(email_module.smtplib, "SMTP", RefusingSMTP)

    assert asyncio.run(notifier.send(EmailContent("s", "b"), ["a@example.com"])) is False
