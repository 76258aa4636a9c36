from __future__ import annotations

from typing import Iterable, Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives


def send_carmelmart_email(
    subject: str,
    message: str,
    recipient_list: Iterable[str],
    html_message: Optional[str] = None,
) -> int:
    """
    Send an email using Django's configured email backend.

    - Uses `settings.DEFAULT_FROM_EMAIL` as the sender
    - Attaches `html_message` as a text/html alternative when given
    - Raises exceptions if sending fails (`fail_silently=False`)
    - Returns the number of messages sent
    """
    if not subject or not isinstance(subject, str):
        raise ValueError("subject must be a non-empty string")

    if message is None or not isinstance(message, str):
        raise ValueError("message must be a string")

    if recipient_list is None:
        raise ValueError("recipient_list must be provided")

    recipients = [r.strip() for r in recipient_list if str(r).strip()]
    if not recipients:
        raise ValueError("recipient_list must contain at least one email address")

    email = EmailMultiAlternatives(
        subject=subject,
        body=message,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=recipients,
    )
    if html_message:
        email.attach_alternative(html_message, "text/html")

    sent_count = email.send(fail_silently=False)

    if sent_count < 1:
        raise RuntimeError("Email was not sent (send returned 0).")

    return sent_count
