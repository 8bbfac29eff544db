"""
Venue CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from urllib.parse import urlparse
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

_DEFAULT_ROOMS = ';'.join([
    'Vergaderzaal 100',
    'Vergaderzaal 1.03',
    'Vergaderzaal 1.04',
    'Vergaderzaal 1.03+1.04',
    'Coachingruimte 2.05',
    'Keuken / Kookstudio',
    'Petit Café / Horeca',
    'BBQ- en Borrelterras',
])

_LOCAL_HOSTS = {'localhost', '127.0.0.1', '::1'}


class Config:
    """Application configuration."""

    # Database — must be set in .env; never hardcode credentials here
    DATABASE_URL = os.getenv('DATABASE_URL')
    if not DATABASE_URL:
        _logger.critical("DATABASE_URL is not set — cannot start. Copy .env.example to .env and configure it.")
        raise ValueError("DATABASE_URL environment variable is not set. Copy .env.example to .env and configure it.")

    # Timezone (display only; booking dates are civil dates)
    TIMEZONE = os.getenv('TIMEZONE', 'Europe/Amsterdam')

    # Rooms shown as calendar columns, in display order
    VENUE_ROOMS = tuple(r.strip() for r in os.getenv('VENUE_ROOMS', _DEFAULT_ROOMS).split(';') if r.strip())

    # Scheduling limits
    MAX_REPEAT_COUNT = int(os.getenv('MAX_REPEAT_COUNT', '52'))
    MAX_DATE_OPTIONS = int(os.getenv('MAX_DATE_OPTIONS', '3'))
    RECURRENCE_CONFLICT_POLICY = os.getenv('RECURRENCE_CONFLICT_POLICY', 'reject')

    # Outbound CRM sync
    CRM_SYNC_URL = os.getenv('CRM_SYNC_URL', '')
    CRM_SYNC_TOKEN = os.getenv('CRM_SYNC_TOKEN', '')
    CRM_SYNC_TIMEOUT_SECONDS = float(os.getenv('CRM_SYNC_TIMEOUT_SECONDS', '10'))
    CRM_SYNC_MAX_ATTEMPTS = int(os.getenv('CRM_SYNC_MAX_ATTEMPTS', '5'))

    # Booking payloads carry contact names; warn when they would travel in clear text
    if CRM_SYNC_URL:
        _parsed = urlparse(CRM_SYNC_URL)
        if _parsed.scheme == 'http' and _parsed.hostname not in _LOCAL_HOSTS:
            _logger.warning(
                f"CRM_SYNC_URL uses plain HTTP to a remote host ({_parsed.hostname}). "
                "Use HTTPS — sync payloads contain sensitive contact data."
            )


# Singleton instance
config = Config()
