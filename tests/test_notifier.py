import smtplib
from decimal import Decimal

from spendwise.notifier import ConsoleNotifier, EmailNotifier, build_notifier, format_budget_alert


class FakeSMTP:
    instances = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        if FakeSMTP.fail_with:
            raise FakeSMTP.fail_with
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, username, password):
        self.logged_in = (username, password)

    def send_message(self, message):
        self.messages.append(message)


def make_notifier():
    return EmailNotifier("smtp.example.com", 2525, "mailer", "secret", sender="alerts@example.com")


def test_alert_body():
    assert format_budget_alert("food", Decimal("8500.00"), Decimal("10000.00")) == (
        "Alert: You've spent 8500.00 out of 10000.00 in food category."
    )


def test_email_notifier_sends_over_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

    assert make_notifier().send_budget_alert("alice@example.com", "food", Decimal("85"), Decimal("100")) is True

    smtp = FakeSMTP.instances[0]
    assert (smtp.host, smtp.port) == ("smtp.example.com", 2525)
    assert smtp.started_tls
    assert smtp.logged_in == ("mailer", "secret")
    message = smtp.messages[0]
    assert message["To"] == "alice@example.com"
    assert message["From"] == "alerts@example.com"
    assert message["Subject"] == "Budget Alert: Spending Limit Reached"
    assert "85 out of 100 in food" in message.get_content()


def test_email_notifier_reports_failure(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = smtplib.SMTPConnectError(421, "unavailable")
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

    assert make_notifier().send_budget_alert("alice@example.com", "food", 85, 100) is False
    FakeSMTP.fail_with = None


def test_console_notifier_always_succeeds():
    assert ConsoleNotifier().send_budget_alert("alice@example.com", "food", 85, 100) is True


def test_build_notifier_selects_backend():
    assert isinstance(build_notifier({"EMAIL_BACKEND": "console"}), ConsoleNotifier)
    notifier = build_notifier({
        "EMAIL_BACKEND": "smtp", "SMTP_HOST": "mail", "SMTP_PORT": 25,
        "EMAIL_FROM": "a@b.c", "SMTP_USE_TLS": False,
    })
    assert isinstance(notifier, EmailNotifier)
    assert notifier.use_tls is False
