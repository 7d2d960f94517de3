"""
Spendwise - Notifications

Budget alert delivery. Senders share one method,
send_budget_alert(recipient, category, spent, limit) -> bool, and report
failure through the return value instead of raising.

Author: Spendwise contributors
License: MIT
"""

import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)

ALERT_SUBJECT = "Budget Alert: Spending Limit Reached"


def format_budget_alert(category, spent, limit):
    """Plain-text body of a budget alert."""
    return f"Alert: You've spent {spent} out of {limit} in {category} category."


class ConsoleNotifier:
    """Writes alerts to the log. Used in development and when SMTP is not configured."""

    def send_budget_alert(self, recipient, category, spent, limit):
        logger.info("[EMAIL] To %s | %s | %s", recipient, ALERT_SUBJECT, format_budget_alert(category, spent, limit))
        return True


class EmailNotifier:
    """Sends alerts over SMTP."""

    def __init__(self, host, port=587, username=None, password=None,
                 sender="noreply@spendwise.local", use_tls=True, timeout=10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, recipient, category, spent, limit):
        message = EmailMessage()
        message["Subject"] = ALERT_SUBJECT
        message["From"] = self.sender
        message["To"] = recipient
        message.set_content(format_budget_alert(category, spent, limit))
        return message

    def send_budget_alert(self, recipient, category, spent, limit):
        """
        Email a budget alert.

        Returns:
            bool: True when the SMTP server accepted the message
        """
        message = self.build_message(recipient, category, spent, limit)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("[EMAIL] Failed to send budget alert to %s: %s", recipient, e)
            return False

        logger.info("[EMAIL] Budget alert sent to %s (%s)", recipient, category)
        return True


def build_notifier(config):
    """Pick the notifier backend named by EMAIL_BACKEND."""
    if config.get("EMAIL_BACKEND") == "smtp":
        return EmailNotifier(
            host=config["SMTP_HOST"],
            port=config["SMTP_PORT"],
            username=config.get("SMTP_USER"),
            password=config.get("SMTP_PASSWORD"),
            sender=config["EMAIL_FROM"],
            use_tls=config.get("SMTP_USE_TLS", True),
        )
    return ConsoleNotifier()
