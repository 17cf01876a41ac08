# core/notifications.py

import logging
from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioRestException

logger = logging.getLogger(__name__)

_twilio_client = None


def get_twilio_client():
    """Lazily build the Twilio client; None when SMS is not configured."""
    global _twilio_client
    if _twilio_client is None and all(
        [settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, settings.TWILIO_PHONE_NUMBER]
    ):
        _twilio_client = TwilioClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
    return _twilio_client


def send_notification(recipient, subject, template_prefix, context) -> bool:
    """
    Deliver one notification by e-mail (and SMS when Twilio is configured).

    Returns True when the e-mail was handed to the mail backend. Delivery
    failures are logged, never raised: callers treat notifications as
    fire-and-forget.
    """
    if not getattr(recipient, "email", None):
        logger.warning("Attempted to send notification to recipient %s but they have no email.", recipient)
        return False

    delivered = False
    text_body = ""
    try:
        text_body = render_to_string(f"{template_prefix}.txt", context)
        html_body = render_to_string(f"{template_prefix}.html", context)

        send_mail(
            subject=subject,
            message=text_body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient.email],
            html_message=html_body,
            fail_silently=False,
        )
        delivered = True
    except Exception as e:
        logger.error("Failed to send email for template %s to %s: %s", template_prefix, recipient.email, e)

    phone_number = getattr(recipient, "phone_number", None)
    twilio_client = get_twilio_client()
    if twilio_client and phone_number:
        sms_body = context.get("sms_text") or text_body[:160]
        try:
            twilio_client.messages.create(
                body=sms_body,
                from_=settings.TWILIO_PHONE_NUMBER,
                to=str(phone_number),
            )
        except TwilioRestException as e:
            logger.error("Failed to send SMS to %s: %s", phone_number, e)

    return delivered
