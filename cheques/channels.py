"""
Delivery channels for handover codes - SMS (Twilio), WhatsApp (Meta Cloud API)
and email (Django mail backend).

Every sender returns (success, error) and never raises for delivery problems;
the caller decides what a failed delivery means.
"""

import logging

import requests
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)

WHATSAPP_API_URL = 'https://graph.facebook.com/v23.0/{phone_number_id}/messages'
SEND_TIMEOUT = 30  # seconds


def mask_contact(contact):
    """Shorten a phone number or email for log lines: +23324*** / jo***@example.com."""
    contact = contact or ''
    if '@' in contact:
        local, _, domain = contact.partition('@')
        return f'{local[:2]}***@{domain}'
    return f'{contact[:6]}***'


def normalize_phone(phone):
    """E.164-ish normalisation: strip spaces and dashes, make sure of a leading +."""
    cleaned = phone.replace(' ', '').replace('-', '').replace('(', '').replace(')', '')
    if cleaned.startswith('+'):
        return cleaned
    default_cc = getattr(settings, 'DEFAULT_COUNTRY_CODE', '')
    if cleaned.startswith('0') and default_cc:
        return f'+{default_cc}{cleaned[1:]}'
    return '+' + cleaned


def send_sms(destination, message):
    """Send an SMS through Twilio using the configured account and sender number."""
    account_sid = settings.TWILIO_ACCOUNT_SID
    auth_token = settings.TWILIO_AUTH_TOKEN
    from_number = settings.TWILIO_PHONE_NUMBER

    if not account_sid or not auth_token or not from_number:
        logger.error('Twilio credentials not configured: sid=%s, token=%s, from=%s',
                     bool(account_sid), bool(auth_token), bool(from_number))
        return False, 'SMS channel not configured'

    to = normalize_phone(destination)
    try:
        from twilio.rest import Client
        client = Client(account_sid, auth_token)
        msg = client.messages.create(body=message, from_=from_number, to=to)
        logger.info(f'Twilio SMS sent: SID={msg.sid}, status={msg.status}, to={mask_contact(to)}')
        return True, ''
    except Exception as e:
        logger.warning(f'Twilio SMS to {mask_contact(to)} failed: {e}')
        return False, str(e)


def send_whatsapp(destination, message):
    """Send a plain-text WhatsApp message through the Meta Cloud API."""
    access_token = settings.WHATSAPP_ACCESS_TOKEN
    phone_number_id = settings.WHATSAPP_PHONE_NUMBER_ID

    if not access_token or not phone_number_id:
        logger.error('WhatsApp credentials not configured: token=%s, phone_id=%s',
                     bool(access_token), bool(phone_number_id))
        return False, 'WhatsApp channel not configured'

    to = normalize_phone(destination).lstrip('+')
    payload = {
        'messaging_product': 'whatsapp',
        'recipient_type': 'individual',
        'to': to,
        'type': 'text',
        'text': {'body': message},
    }
    headers = {
        'Authorization': f'Bearer {access_token}',
        'Content-Type': 'application/json',
    }
    url = WHATSAPP_API_URL.format(phone_number_id=phone_number_id)

    try:
        response = requests.post(url, json=payload, headers=headers, timeout=SEND_TIMEOUT)
    except requests.RequestException as e:
        logger.warning(f'WhatsApp send to {mask_contact(to)} errored: {e}')
        return False, str(e)

    if response.status_code in (200, 201):
        logger.info(f'WhatsApp message sent to {mask_contact(to)}')
        return True, ''
    logger.warning(f'WhatsApp send failed: status={response.status_code}, body={response.text[:300]}')
    return False, f'WhatsApp API error {response.status_code}'


def send_email(destination, message, subject='Cheque handover code'):
    try:
        sent = send_mail(
            subject, message, settings.DEFAULT_FROM_EMAIL, [destination], fail_silently=False,
        )
    except Exception as e:
        logger.warning(f'Email to {mask_contact(destination)} failed: {e}')
        return False, str(e)
    if not sent:
        return False, 'Email backend accepted no messages'
    logger.info(f'Email sent to {mask_contact(destination)}')
    return True, ''


SENDERS = {
    'sms': send_sms,
    'whatsapp': send_whatsapp,
    'email': send_email,
}


def dispatch(channel, destination, message):
    """Route a message to the sender for `channel`. Returns (success, error)."""
    sender = SENDERS.get(channel)
    if not sender:
        logger.warning(f'Unknown delivery channel: {channel}')
        return False, f'Unknown channel: {channel}'
    return sender(destination, message)
