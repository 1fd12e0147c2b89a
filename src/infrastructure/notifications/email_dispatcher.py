# src/infrastructure/notifications/email_dispatcher.py

import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from src import config
from src.domain.exceptions import NotificationError
from src.domain.notifications import Notification, NotificationKind
from src.domain.state_machine import PaymentMethod

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "email"

PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH.value: "Cash on Pickup",
    PaymentMethod.WALLET_TRANSFER.value: "Wallet Transfer",
}


def _money(value) -> str:
    return f"{config.CURRENCY_SYMBOL}{float(value):,.2f}"


def _build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["money"] = _money
    return env


class SmtpTransport:
    """Hands a rendered message to an SMTP relay."""

    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        username: str = config.SMTP_USERNAME,
        password: str = config.SMTP_PASSWORD,
        use_tls: bool = config.SMTP_USE_TLS,
        timeout: float = config.SMTP_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(
                f"Could not send email to {message['To']}: {exc}"
            ) from exc


class EmailDispatcher:
    """
    Transactional emails for the booking lifecycle.

    The send_* methods raise NotificationError on transport failure;
    deliver() is the soft variant used after a booking transaction, which
    logs the failure instead of raising.
    """

    def __init__(
        self,
        transport: SmtpTransport | None = None,
        sender: str = config.SMTP_FROM,
        enabled: bool = config.EMAIL_ENABLED,
    ):
        self.transport = transport or SmtpTransport()
        self.sender = sender
        self.enabled = enabled
        self.templates = _build_environment()

    def send_receipt(self, email: str, name: str, snapshot: dict) -> None:
        self._send(
            to=email,
            subject=f"{config.APP_NAME} - Booking Confirmation #{snapshot['booking_id']}",
            template="receipt.html",
            context={
                "name": name,
                "booking": snapshot,
                "payment_method_label": PAYMENT_METHOD_LABELS.get(
                    snapshot.get("payment_method"),
                    snapshot.get("payment_method"),
                ),
            },
        )

    def send_rejection(
        self,
        email: str,
        name: str,
        snapshot: dict,
        reason: str,
    ) -> None:
        self._send(
            to=email,
            subject=(
                f"{config.APP_NAME} - Payment Verification Failed "
                f"for Booking #{snapshot['booking_id']}"
            ),
            template="rejection.html",
            context={"name": name, "booking": snapshot, "reason": reason},
        )

    def send_otp(self, email: str, name: str, otp: str) -> None:
        self._send(
            to=email,
            subject=f"{config.APP_NAME} - Email Verification OTP",
            template="otp.html",
            context={"name": name, "otp": otp},
        )

    def deliver(self, notification: Notification) -> bool:
        try:
            if notification.kind == NotificationKind.RECEIPT:
                self.send_receipt(
                    notification.email,
                    notification.name,
                    notification.snapshot,
                )
            elif notification.kind == NotificationKind.REJECTION:
                self.send_rejection(
                    notification.email,
                    notification.name,
                    notification.snapshot,
                    notification.reason or "",
                )
            else:
                self.send_otp(
                    notification.email,
                    notification.name,
                    notification.snapshot["otp"],
                )
        except NotificationError:
            logger.warning(
                "Failed to send %s email to %s",
                notification.kind.value,
                notification.email,
                exc_info=True,
            )
            return False
        return True

    def deliver_all(self, notifications) -> int:
        return sum(1 for notification in notifications if self.deliver(notification))

    def render(self, template: str, context: dict) -> str:
        context = {
            "app_name": config.APP_NAME,
            "support_email": config.SUPPORT_EMAIL,
            **context,
        }
        return self.templates.get_template(template).render(**context)

    def _send(self, to: str, subject: str, template: str, context: dict) -> None:
        html = self.render(template, context)
        if not self.enabled:
            logger.info("Email disabled, not sending %r to %s", subject, to)
            return

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")

        self.transport.send(message)
        logger.info("Email %r sent to %s", subject, to)
