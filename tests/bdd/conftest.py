"""
Shared fixtures and step definitions for BDD tests.

- runner, context: available to all scenario files in this directory
- venue: an in-memory store patched in under the scheduler, the inquiry
  pipeline and the CLI, so scenarios run the real scheduling rules end-to-end
- no_side_effects: autouse, prevents log files and sync handler registration
- 'the output contains' step: shared across all feature files
"""

import itertools
from dataclasses import replace
from datetime import date

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import given, then, parsers

from venuecrm.engine.errors import PersistenceError
from venuecrm.engine.timegrid import booking_slots, parse_time
from venuecrm.models import Booking


class InMemoryStore:
    """Stands in for venuecrm.engine.store with the same call signatures."""

    def __init__(self):
        self.bookings = {}
        self.inquiries = {}
        self.fail_commits = False
        self._ids = itertools.count(1)

    # bookings

    def list_bookings(self, room_name=None, booking_date=None, date_from=None, date_to=None,
                      status=None, inquiry_id=None, contact_id=None, limit=1000):
        found = [
            b for b in self.bookings.values()
            if (room_name is None or b.room_name == room_name)
            and (booking_date is None or b.date == booking_date)
            and (date_from is None or b.date >= date_from)
            and (date_to is None or b.date <= date_to)
            and (status is None or b.status == status)
            and (inquiry_id is None or b.inquiry_id == inquiry_id)
            and (contact_id is None or b.contact_id == contact_id)
        ]
        found.sort(key=lambda b: (b.date, booking_slots(b)[0], b.room_name))
        return found[:limit]

    def get_booking(self, booking_id):
        return self.bookings.get(booking_id)

    def create_booking(self, booking):
        stored = replace(booking, id=next(self._ids))
        self.bookings[stored.id] = stored
        return stored

    def create_bookings(self, bookings):
        return [self.create_booking(b) for b in bookings]

    def update_booking(self, booking):
        if booking.id not in self.bookings:
            return None
        self.bookings[booking.id] = booking
        return booking

    def delete_booking(self, booking_id):
        return self.bookings.pop(booking_id, None) is not None

    # inquiries

    def get_inquiry(self, inquiry_id):
        inquiry = self.inquiries.get(inquiry_id)
        return replace(inquiry) if inquiry else None

    def list_inquiries(self, status=None, limit=500):
        return [replace(i) for i in self.inquiries.values() if status is None or i.status == status][:limit]

    def update_inquiry_status(self, inquiry_id, status):
        if inquiry_id not in self.inquiries:
            return None
        self.inquiries[inquiry_id] = replace(self.inquiries[inquiry_id], status=status)
        return replace(self.inquiries[inquiry_id])

    def commit_conversion(self, bookings, inquiry_id, status):
        if self.fail_commits:
            raise PersistenceError("Database error: connection lost")
        created = self.create_bookings(bookings)
        self.inquiries[inquiry_id] = replace(self.inquiries[inquiry_id], status=status)
        return created

    # lookups

    def get_contact(self, contact_id):
        return None

    def get_company(self, company_id):
        return None

    def list_room_settings(self):
        return []


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture
def venue():
    fake = InMemoryStore()
    with patch("venuecrm.engine.scheduler.store", fake), \
         patch("venuecrm.engine.inquiries.store", fake), \
         patch("venuecrm.cli.main.store", fake):
        yield fake


@pytest.fixture(autouse=True)
def no_side_effects():
    with patch("venuecrm.cli.main.configure_logging"), \
         patch("venuecrm.cli.main.register_sync_handlers"):
        yield


def parse_day(text: str) -> date:
    return date.fromisoformat(text)


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then(parsers.parse('"{room}" has {count:d} booking(s) on {day}'))
def room_booking_count(venue, room, count, day):
    assert len(venue.list_bookings(room_name=room, booking_date=parse_day(day))) == count


@given(parsers.re(
    r'"(?P<title>[^"]+)" is booked in "(?P<room>[^"]+)" on (?P<day>\d{4}-\d{2}-\d{2}) '
    r'from (?P<start>\d{2}:\d{2}) to (?P<end>\d{2}:\d{2})$'
))
def existing_booking(venue, title, room, day, start, end):
    start_hour, start_minute = parse_time(start)
    end_hour, end_minute = parse_time(end)
    venue.create_booking(Booking(
        room_name=room, date=parse_day(day), title=title, contact_name="Bakker",
        start_hour=start_hour, start_minute=start_minute, end_hour=end_hour, end_minute=end_minute,
    ))
