"""
Data Models
Dataclasses for all entities. These are pure Python objects, no database logic.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


BOOKING_STATUSES = ('confirmed', 'option')

PREPARATION_STATUSES = ('pending', 'info_waiting', 'in_progress', 'ready')

# Sales funnel, in board order
PIPELINE_STAGES = (
    'new',
    'contacted',
    'option',
    'quoted',
    'quote_revised',
    'reserved',
    'script',
    'confirmed',
    'invoiced',
    'lost',
    'converted',
    'after_sales',
)
TERMINAL_STAGES = ('lost', 'converted', 'after_sales')

RECURRENCE_TYPES = ('none', 'weekly', 'biweekly', 'monthly', 'quarterly', 'specific_dates')


@dataclass
class Booking:
    """One room reserved for one interval on one date. id=None means not yet stored."""
    id: Optional[int] = None
    room_name: str = ''
    date: Optional[date] = None
    start_hour: int = 9
    start_minute: int = 0
    end_hour: int = 12
    end_minute: int = 0
    title: str = ''
    contact_name: str = ''
    contact_id: Optional[int] = None
    inquiry_id: Optional[int] = None
    status: str = 'confirmed'
    guest_count: Optional[int] = None
    room_setup: Optional[str] = None
    requirements: Optional[str] = None
    notes: Optional[str] = None
    preparation_status: str = 'pending'
    reservation_number: Optional[str] = None
    external_event_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Inquiry:
    """Prospective event moving through the sales pipeline"""
    id: Optional[int] = None
    display_number: Optional[str] = None
    contact_id: Optional[int] = None
    contact_name: str = ''
    event_type: str = ''
    preferred_date: Optional[date] = None
    guest_count: int = 0
    budget: Optional[Decimal] = None
    room_preference: Optional[str] = None
    message: Optional[str] = None
    source: str = 'manual'
    status: str = 'new'
    external_opportunity_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class DateOption:
    """Candidate slot staged while scheduling an inquiry. Never persisted."""
    date: Optional[date] = None
    room_name: Optional[str] = None
    start_hour: int = 9
    start_minute: int = 0
    end_hour: int = 12
    end_minute: int = 0
    status: str = 'option'


@dataclass
class Contact:
    id: Optional[int] = None
    first_name: str = ''
    last_name: str = ''
    email: Optional[str] = None
    phone: Optional[str] = None
    company_id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class Company:
    id: Optional[int] = None
    name: str = ''
    created_at: Optional[datetime] = None


@dataclass
class RoomSetting:
    """Per-room display name and capacity"""
    room_name: str = ''
    display_name: Optional[str] = None
    max_guests: int = 0
    enabled: bool = True
