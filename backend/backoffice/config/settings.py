"""Environment-driven settings for the application factory.

Every key can be overridden by the dict passed to create_app(); tests rely on that.
"""
from __future__ import annotations
import os
from typing import Any, Dict, List

DEFAULT_REMINDER_AFTER_HOURS = 24
DEFAULT_NOTIFIER_QUEUE_SIZE = 1000
DEFAULT_SETTLEMENT_MAX_ATTEMPTS = 3


def _split_numbers(raw: str) -> List[str]:
    return [n.strip() for n in (raw or '').split(',') if n.strip()]


def load_settings() -> Dict[str, Any]:
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO').upper(),
        # SMS gateway; an empty URL keeps notifications in the log only
        'SMS_API_URL': os.getenv('SMS_API_URL', ''),
        'SMS_USERNAME': os.getenv('SMS_USERNAME', ''),
        'SMS_PASSWORD': os.getenv('SMS_PASSWORD', ''),
        'SMS_SENDER_ID': os.getenv('SMS_SENDER_ID', 'BACKOFFICE'),
        'SMS_TIMEOUT': float(os.getenv('SMS_TIMEOUT', '10')),
        'OPS_NOTIFY_NUMBERS': _split_numbers(os.getenv('OPS_NOTIFY_NUMBERS', '')),
        'CUSTOMER_CARE_NUMBER': os.getenv('CUSTOMER_CARE_NUMBER', ''),
        'NOTIFIER_QUEUE_SIZE': int(os.getenv('NOTIFIER_QUEUE_SIZE', DEFAULT_NOTIFIER_QUEUE_SIZE)),
        'REMINDER_AFTER_HOURS': int(os.getenv('REMINDER_AFTER_HOURS', DEFAULT_REMINDER_AFTER_HOURS)),
        'SETTLEMENT_MAX_ATTEMPTS': int(os.getenv('SETTLEMENT_MAX_ATTEMPTS', DEFAULT_SETTLEMENT_MAX_ATTEMPTS)),
    }

__all__ = ['load_settings']
