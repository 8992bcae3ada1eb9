"""Transactional billing email via SES."""

import logging
import os

from shared.aws_clients import get_ses
from shared.constants import BASE_URL, INTERVAL_YEARLY

logger = logging.getLogger(__name__)

WELCOME_EMAIL_SENDER = os.environ.get("WELCOME_EMAIL_SENDER", "welcome@transformer.social")


def _plan_name(interval: str) -> str:
    return "Yearly Pro" if interval == INTERVAL_YEARLY else "Monthly Pro"


def send_welcome_email(email: str, amount_cents: int, currency: str, interval: str) -> bool:
    """Send the subscription welcome email.

    Errors from SES propagate; callers run this as a detached task.

    Returns:
        False when there is no recipient, True once SES accepted the message
    """
    if not email:
        logger.info("No customer email, skipping welcome email")
        return False

    plan = _plan_name(interval)
    amount = f"{currency.upper()} {amount_cents / 100:.2f}"
    subject = (
        "Welcome to Social Transformer - your yearly plan is active!"
        if interval == INTERVAL_YEARLY
        else "Welcome to Social Transformer - your Pro plan is active!"
    )

    get_ses().send_email(
        Source=f"Social Transformer <{WELCOME_EMAIL_SENDER}>",
        Destination={"ToAddresses": [email]},
        Message={
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {
                "Html": {
                    "Data": (
                        '<div style="font-family:system-ui,sans-serif;line-height:1.6;color:#0f172a;">'
                        '<h2 style="margin:0 0 16px;color:#1f2937;">Welcome to Social Transformer!</h2>'
                        f"<p>Thank you for your purchase. Your {plan} plan is now active.</p>"
                        '<div style="background:#f8fafc;padding:16px;border-radius:8px;margin:16px 0;">'
                        f'<p style="margin:4px 0;"><strong>Plan:</strong> {plan}</p>'
                        f'<p style="margin:4px 0;"><strong>Amount:</strong> {amount}</p>'
                        "</div>"
                        f'<p><a href="{BASE_URL}/app" style="color:#2563eb;text-decoration:none;">'
                        "Open Social Transformer</a></p>"
                        '<p style="margin-top:24px;font-size:14px;color:#6b7280;">'
                        "Questions? Just reply to this email.</p>"
                        "</div>"
                    ),
                    "Charset": "UTF-8",
                },
                "Text": {
                    "Data": (
                        "Welcome to Social Transformer!\n\n"
                        f"Thank you for your purchase. Your {plan} plan is now active.\n\n"
                        f"Plan: {plan}\n"
                        f"Amount: {amount}\n\n"
                        f"Get started: {BASE_URL}/app\n"
                    ),
                    "Charset": "UTF-8",
                },
            },
        },
    )
    logger.info(f"Welcome email sent to {email[:3]}***")
    return True
