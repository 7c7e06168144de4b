"""Outbound e-mail through Flask-Mail."""

import logging
from smtplib import SMTPException

from flask import current_app
from flask_mail import Message

from ispmanager import mail

logger = logging.getLogger(__name__)


def send_customer_credentials(customer, temp_password: str, company_name: str = '') -> bool:
    """Mail a new customer their portal login. Returns False when mail is off or fails."""
    if not current_app.config.get('MAIL_ENABLED'):
        logger.info('Mail disabled; not sending credentials to %s', customer.email)
        return False

    sender_name = company_name or 'your ISP'
    message = Message(
        subject=f"Your {sender_name} customer portal account",
        recipients=[customer.email],
        body=(
            f"Hello {customer.name},\n\n"
            f"An account was created for you by {sender_name}.\n"
            f"Login: {customer.email}\n"
            f"Temporary password: {temp_password}\n\n"
            "Please change the password after your first login.\n"
        ),
    )
    try:
        mail.send(message)
    except (SMTPException, OSError) as exc:
        logger.error('Failed to send credentials to %s: %s', customer.email, exc)
        return False
    logger.info('Sent portal credentials to %s', customer.email)
    return True
