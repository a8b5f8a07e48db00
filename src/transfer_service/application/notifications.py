from dataclasses import dataclass
from html import escape

from transfer_service.domain.models import (
    EmailAddress,
    EmailMessage,
    Transaction,
    TransactionDirection,
    format_amount,
)


_HTML_SHELL = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; background-color: #f5f7fb; margin: 0;">
<div style="max-width: 600px; margin: 0 auto; background-color: white;">
<div style="background-color: #5c2d91; padding: 30px; text-align: center; color: white; font-size: 24px;">{brand}</div>
<div style="padding: 40px 30px;">
{body}
</div>
<div style="background-color: #f8f9fa; padding: 20px 30px; text-align: center; color: #6c757d;">{footer}</div>
</div>
</body>
</html>"""


@dataclass(frozen=True)
class ReceiptDetails:
    transaction_id: str
    direction: TransactionDirection
    sender_name: str
    sender_email: str
    recipient_name: str
    recipient_email: str
    amount_text: str
    date_text: str
    note: str

    @classmethod
    def from_transaction(cls, transaction: Transaction, direction: TransactionDirection) -> "ReceiptDetails":
        return cls(
            transaction_id=transaction.id,
            direction=direction,
            sender_name=transaction.sender_name,
            sender_email=transaction.sender_email,
            recipient_name=transaction.recipient_name,
            recipient_email=transaction.recipient_email,
            amount_text=format_amount(transaction.amount),
            date_text=transaction.created_at.strftime("%B %d, %Y %H:%M %Z"),
            note=transaction.note,
        )


class NotificationComposer:
    """Renders the outbound notices as HTML plus plain-text bodies."""

    def __init__(self, sender: EmailAddress, brand: str = "Zelle", code_ttl_minutes: int = 10) -> None:
        self._sender = sender
        self._brand = brand
        self._code_ttl_minutes = code_ttl_minutes

    def _html(self, title: str, body: str, footer: str) -> str:
        return _HTML_SHELL.format(
            title=escape(title),
            brand=escape(self._brand),
            body=body,
            footer=footer,
        )

    def verification(self, to: str, name: str, code: str) -> EmailMessage:
        subject = f"Verify Your {self._brand} Account"
        body = (
            f"<h1>Verify Your Account</h1>"
            f"<p>Hi {escape(name)},</p>"
            f"<p>Enter the verification code below to complete your account setup:</p>"
            f'<div style="font-size: 36px; font-weight: bold; letter-spacing: 8px; text-align: center;">{code}</div>'
            f"<p>This code expires in {self._code_ttl_minutes} minutes. Never share it with anyone.</p>"
        )
        text = (
            f"Hi {name},\n\n"
            f"Your {self._brand} verification code is: {code}\n\n"
            f"This code expires in {self._code_ttl_minutes} minutes.\n\n"
            f"If you didn't request this code, please ignore this email.\n\n"
            f"Best regards,\nThe {self._brand} Team"
        )
        return EmailMessage(
            to=to,
            subject=subject,
            html=self._html(subject, body, "If you didn't request this code, please ignore this email."),
            text=text,
            sender=self._sender,
        )

    def welcome(self, to: str, name: str) -> EmailMessage:
        subject = f"Welcome to {self._brand}!"
        body = (
            f"<h1>Welcome to {escape(self._brand)}, {escape(name)}!</h1>"
            f"<p>Your account has been verified and you're ready to send and receive money.</p>"
        )
        text = (
            f"Hi {name},\n\n"
            f"Welcome to {self._brand}! Your account has been successfully verified and you're ready "
            f"to start sending and receiving money.\n\n"
            f"Best regards,\nThe {self._brand} Team"
        )
        return EmailMessage(
            to=to,
            subject=subject,
            html=self._html(subject, body, "Need help? Contact support."),
            text=text,
            sender=self._sender,
        )

    def receipt(self, details: ReceiptDetails) -> EmailMessage:
        received = details.direction is TransactionDirection.RECEIVED
        if received:
            to = details.recipient_email
            subject = f"{self._brand} Payment Received - {details.amount_text}"
            greeting_name = details.recipient_name
            headline = "You've received a payment!"
            counterparty = f"From: {details.sender_name} ({details.sender_email})"
            signed_amount = f"+{details.amount_text}"
        else:
            to = details.sender_email
            subject = f"{self._brand} Payment Sent - {details.amount_text}"
            greeting_name = details.sender_name
            headline = "Your payment has been sent successfully!"
            counterparty = f"Recipient: {details.recipient_name} ({details.recipient_email})"
            signed_amount = f"-{details.amount_text}"

        lines = [
            f"Hi {greeting_name},",
            "",
            headline,
            "",
            "TRANSACTION DETAILS:",
            f"Transaction ID: {details.transaction_id}",
            counterparty,
            f"Amount: {details.amount_text}",
            f"Date: {details.date_text}",
        ]
        if details.note:
            lines.append(f"Note: {details.note}")
        lines += ["", "Keep this receipt for your records.", "", f"The {self._brand} Team"]

        rows = "".join(
            f"<tr><td><strong>{escape(label)}</strong></td><td>{escape(value)}</td></tr>"
            for label, value in [
                ("Transaction ID", details.transaction_id),
                ("From" if received else "To", details.sender_name if received else details.recipient_name),
                ("Email", details.sender_email if received else details.recipient_email),
                ("Date & Time", details.date_text),
                *([("Note", details.note)] if details.note else []),
                ("Status", "Completed"),
            ]
        )
        body = (
            f"<h1>{'Money Received' if received else 'Payment Sent'}</h1>"
            f'<div style="font-size: 32px; font-weight: bold; text-align: center;">{escape(signed_amount)}</div>'
            f"<table>{rows}</table>"
        )
        return EmailMessage(
            to=to,
            subject=subject,
            html=self._html(subject, body, "Questions about this transaction? Contact support."),
            text="\n".join(lines),
            sender=self._sender,
        )
