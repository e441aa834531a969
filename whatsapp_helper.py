"""
WhatsApp Notification Helper
Sends fee reminder messages to guardians via Meta Cloud API or Twilio

The provider and credentials come from the WHATSAPP_* configuration values.
"""

import logging
import requests
from typing import List, Dict, Any
from config import Config

logger = logging.getLogger(__name__)

# Add console handler if not present
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter('[WHATSAPP %(levelname)s] %(asctime)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

META_API_URL = 'https://graph.facebook.com/v18.0/{phone_number_id}/messages'
TWILIO_API_URL = 'https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json'

SUPPORTED_PROVIDERS = ('Meta Cloud API', 'Twilio')


class WhatsAppSender:
    """WhatsApp message sender supporting Meta Cloud API and Twilio"""

    def __init__(self, settings=None):
        """
        Initialize from a configuration object

        Args:
            settings: Config class or instance carrying WHATSAPP_* attributes
        """
        settings = settings or Config
        self.provider = settings.WHATSAPP_PROVIDER
        self.api_key = settings.WHATSAPP_API_KEY
        self.api_secret = settings.WHATSAPP_API_SECRET
        self.access_token = settings.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = settings.WHATSAPP_PHONE_NUMBER_ID
        self.default_template_language = settings.WHATSAPP_TEMPLATE_LANGUAGE or 'en'

    def is_configured(self) -> bool:
        """Check the credentials the selected provider needs are present"""
        if self.provider == 'Meta Cloud API':
            return bool(self.access_token and self.phone_number_id)
        if self.provider == 'Twilio':
            return bool(self.api_key and self.api_secret and self.phone_number_id)
        return False

    def send_message(self, to_phone: str, message: str, template_name: str = None,
                     template_params: List[str] = None) -> Dict[str, Any]:
        """
        Send a WhatsApp message

        Args:
            to_phone: Recipient phone number (with country code, e.g., +91xxxxxxxxxx)
            message: Message text (for text messages)
            template_name: Optional template name (Meta Cloud API only)
            template_params: Optional list of template parameters

        Returns:
            dict with 'success', 'message_id', 'error' keys
        """
        to_phone = normalize_phone(to_phone)

        if not to_phone:
            return {'success': False, 'message_id': None, 'error': 'Invalid phone number'}

        if self.provider == 'Meta Cloud API':
            return self._send_via_meta(to_phone, message, template_name, template_params)
        elif self.provider == 'Twilio':
            return self._send_via_twilio(to_phone, message)
        else:
            return {'success': False, 'message_id': None, 'error': f'Unsupported provider: {self.provider}'}

    def _send_via_meta(self, to_phone: str, message: str, template_name: str = None,
                       template_params: List[str] = None) -> Dict[str, Any]:
        """Send message via Meta Cloud API (Official WhatsApp Business API)"""
        try:
            url = META_API_URL.format(phone_number_id=self.phone_number_id)
            headers = {
                'Authorization': f'Bearer {self.access_token}',
                'Content-Type': 'application/json'
            }

            # Meta expects the number without the leading +
            to_phone_clean = to_phone.lstrip('+')

            if template_name:
                payload = {
                    'messaging_product': 'whatsapp',
                    'to': to_phone_clean,
                    'type': 'template',
                    'template': {
                        'name': template_name,
                        'language': {'code': self.default_template_language}
                    }
                }

                if template_params:
                    payload['template']['components'] = [{
                        'type': 'body',
                        'parameters': [{'type': 'text', 'text': p} for p in template_params]
                    }]
            else:
                # Free-form text only works within the 24-hour window
                payload = {
                    'messaging_product': 'whatsapp',
                    'recipient_type': 'individual',
                    'to': to_phone_clean,
                    'type': 'text',
                    'text': {'body': message}
                }

            logger.info(f"[Meta API] Sending to {to_phone}")
            response = requests.post(url, headers=headers, json=payload, timeout=30)

            if response.status_code in [200, 201]:
                data = response.json()
                message_id = data.get('messages', [{}])[0].get('id')
                logger.info(f"[Meta API] Message sent successfully. ID: {message_id}")
                return {'success': True, 'message_id': message_id, 'error': None}
            else:
                error = response.json().get('error', {}).get('message', response.text)
                logger.error(f"[Meta API] Error: {error}")
                return {'success': False, 'message_id': None, 'error': error}

        except Exception as e:
            logger.error(f"[Meta API] Exception: {e}")
            return {'success': False, 'message_id': None, 'error': str(e)}

    def _send_via_twilio(self, to_phone: str, message: str) -> Dict[str, Any]:
        """Send message via Twilio"""
        try:
            account_sid = self.api_key
            auth_token = self.api_secret

            from_phone = self.phone_number_id
            if not from_phone.startswith('+'):
                from_phone = '+' + from_phone

            url = TWILIO_API_URL.format(account_sid=account_sid)
            data = {
                'From': f'whatsapp:{from_phone}',
                'To': f'whatsapp:{to_phone}',
                'Body': message or ''
            }

            logger.info(f"[Twilio] Sending from {data['From']} to {data['To']}")
            response = requests.post(url, auth=(account_sid, auth_token), data=data, timeout=30)

            if response.status_code in [200, 201]:
                message_id = response.json().get('sid')
                logger.info(f"[Twilio] Message sent. SID: {message_id}")
                return {'success': True, 'message_id': message_id, 'error': None}
            else:
                error = response.json().get('message', response.text)
                logger.error(f"[Twilio] Error: {error}")
                return {'success': False, 'message_id': None, 'error': error}

        except Exception as e:
            logger.error(f"[Twilio] Exception: {e}")
            return {'success': False, 'message_id': None, 'error': str(e)}


def normalize_phone(phone: str) -> str:
    """Normalize phone number to international format"""
    if not phone:
        return ''

    # Remove all non-digit characters except +
    phone = ''.join(c for c in phone if c.isdigit() or c == '+')

    if not phone.startswith('+'):
        # Assume Indian number if 10 digits
        if len(phone) == 10:
            phone = '+91' + phone
        else:
            phone = '+' + phone

    return phone


def is_whatsapp_configured(settings=None) -> bool:
    """Check if WhatsApp delivery is configured"""
    return WhatsAppSender(settings).is_configured()


def send_whatsapp_message(to_phone: str, message: str, settings=None,
                          template_name: str = None, template_params: List[str] = None) -> Dict[str, Any]:
    """
    Send a WhatsApp message with the configured provider

    Returns:
        dict with 'success', 'message_id', 'error' keys
    """
    sender = WhatsAppSender(settings)

    if not sender.provider:
        return {'success': False, 'message_id': None, 'error': 'WhatsApp not configured'}

    if not sender.is_configured():
        return {'success': False, 'message_id': None, 'error': 'WhatsApp not properly configured'}

    return sender.send_message(to_phone, message, template_name, template_params)
