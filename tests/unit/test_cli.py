"""
Unit tests for venuecrm/cli/main.py.

Mocking strategy:
  - patch venuecrm.cli.main.scheduler / inquiries / store / sync per test
  - patch configure_logging and register_sync_handlers (autouse) so no log
    files are written and the global bus stays untouched
  - click.testing.CliRunner invokes commands end-to-end
"""

import pytest
import psycopg2
from contextlib import contextmanager
from datetime import date
from unittest.mock import patch

from click.testing import CliRunner

from venuecrm.cli.main import cli
from venuecrm.config import config
from venuecrm.engine.errors import ConflictError, PersistenceError, ValidationError
from venuecrm.engine.inquiries import ConversionResult
from venuecrm.engine.scheduler import BatchPlan
from venuecrm.models import Booking, Company, Contact, Inquiry, RoomSetting

DAY = date(2024, 6, 10)

TRAINING = Booking(
    id=1, room_name="Oost", date=DAY, start_hour=9, end_hour=12, title="Training",
    contact_name="Bakker", contact_id=3, guest_count=12, notes="Beamer nodig",
)

INQUIRY = Inquiry(
    id=7, contact_name="De Vries", event_type="Bedrijfsuitje", guest_count=40,
    preferred_date=date(2024, 6, 11), room_preference="West", status="new",
)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_side_effects():
    with patch("venuecrm.cli.main.configure_logging"), \
         patch("venuecrm.cli.main.register_sync_handlers"):
        yield


@pytest.fixture
def mock_scheduler():
    with patch("venuecrm.cli.main.scheduler") as mock:
        yield mock


@pytest.fixture
def mock_store():
    with patch("venuecrm.cli.main.store") as mock:
        yield mock


@pytest.fixture
def mock_inquiries():
    with patch("venuecrm.cli.main.inquiries") as mock:
        yield mock


# ---------------------------------------------------------------------------
# bookings list / day / show
# ---------------------------------------------------------------------------

class TestBookingQueries:

    def test_list_empty(self, runner, mock_scheduler):
        mock_scheduler.list_bookings.return_value = []
        result = runner.invoke(cli, ["bookings", "list"])
        assert result.exit_code == 0
        assert "No bookings found" in result.output

    def test_list_passes_filters(self, runner, mock_scheduler):
        mock_scheduler.list_bookings.return_value = [TRAINING]
        result = runner.invoke(cli, ["bookings", "list", "--from", "2024-06-01", "--room", "Oost",
                                     "--status", "confirmed"])
        assert result.exit_code == 0
        assert "Training" in result.output
        assert "09:00–12:00" in result.output
        mock_scheduler.list_bookings.assert_called_once_with(
            room_name="Oost", booking_date=None, date_from=date(2024, 6, 1), date_to=None, status="confirmed",
        )

    def test_list_bad_date(self, runner, mock_scheduler):
        result = runner.invoke(cli, ["bookings", "list", "--date", "10-06-2024"])
        assert result.exit_code != 0
        assert "YYYY-MM-DD" in result.output

    def test_day_shows_rooms_and_free_columns(self, runner, mock_scheduler):
        mock_scheduler.get_day_schedule.return_value = {"Oost": [TRAINING], "West": []}
        result = runner.invoke(cli, ["bookings", "day", "2024-06-10"])
        assert result.exit_code == 0
        assert "Oost" in result.output
        assert "Training" in result.output
        assert "(free)" in result.output
        mock_scheduler.get_day_schedule.assert_called_once_with(DAY)

    def test_show_not_found(self, runner, mock_store):
        mock_store.get_booking.return_value = None
        result = runner.invoke(cli, ["bookings", "show", "99"])
        assert "not found" in result.output

    def test_show_with_company(self, runner, mock_store):
        mock_store.get_booking.return_value = TRAINING
        mock_store.get_contact.return_value = Contact(id=3, first_name="Eva", last_name="Bakker", company_id=2)
        mock_store.get_company.return_value = Company(id=2, name="Bakker & Zn")
        result = runner.invoke(cli, ["bookings", "show", "1"])
        assert result.exit_code == 0
        assert "BOOKING #1: Training" in result.output
        assert "Bakker & Zn" in result.output
        assert "Beamer nodig" in result.output

    def test_show_survives_contact_lookup_failure(self, runner, mock_store):
        mock_store.get_booking.return_value = TRAINING
        mock_store.get_contact.side_effect = PersistenceError("Database error: timeout")
        result = runner.invoke(cli, ["bookings", "show", "1"])
        assert result.exit_code == 0
        assert "Training" in result.output
        assert "Company:" not in result.output


# ---------------------------------------------------------------------------
# bookings add / edit / move / copy / delete
# ---------------------------------------------------------------------------

ADD_ARGS = ["bookings", "add", "--room", "Oost", "--date", "2024-06-10", "--start", "11:00",
            "--end", "13:00", "--title", "Lunch", "--contact", "Jansen"]


class TestBookingWrites:

    def test_add_single(self, runner, mock_scheduler):
        mock_scheduler.create_booking.return_value = Booking(
            id=5, room_name="Oost", date=DAY, start_hour=12, end_hour=13, title="Lunch",
        )
        result = runner.invoke(cli, ["bookings", "add", "--room", "Oost", "--date", "2024-06-10",
                                     "--start", "12:00", "--end", "13:00", "--title", "Lunch",
                                     "--contact", "Jansen"])
        assert result.exit_code == 0
        assert "Created booking #5" in result.output
        draft = mock_scheduler.create_booking.call_args.args[0]
        assert (draft.start_hour, draft.end_hour) == (12, 13)
        assert draft.contact_name == "Jansen"

    def test_add_conflict_is_reported(self, runner, mock_scheduler):
        mock_scheduler.create_booking.side_effect = ConflictError([TRAINING])
        result = runner.invoke(cli, ADD_ARGS)
        assert result.exit_code == 0
        assert 'Conflict: "Training" is already booked in Oost' in result.output
        assert "#1 Training" in result.output

    def test_add_invalid_is_reported(self, runner, mock_scheduler):
        mock_scheduler.create_booking.side_effect = ValidationError("End time 09:00 must be after start time 11:00")
        result = runner.invoke(cli, ADD_ARGS)
        assert "Invalid: End time" in result.output

    def test_add_database_error_is_reported(self, runner, mock_scheduler):
        mock_scheduler.create_booking.side_effect = PersistenceError("connection refused")
        result = runner.invoke(cli, ADD_ARGS)
        assert "Database error: connection refused" in result.output
        assert "Nothing was saved" in result.output

    def test_add_weekly_series(self, runner, mock_scheduler):
        created = [Booking(id=10 + i, room_name="Oost", date=date(2024, 1, 1 + 7 * i), title="Yoga")
                   for i in range(4)]
        mock_scheduler.create_recurring_booking.return_value = BatchPlan(accepted=created)
        result = runner.invoke(cli, ["bookings", "add", "--room", "Oost", "--date", "2024-01-01",
                                     "--start", "09:00", "--end", "12:00", "--title", "Yoga",
                                     "--contact", "", "--repeat", "weekly", "--count", "4"])
        assert result.exit_code == 0
        assert "Created 4 booking(s)" in result.output
        args = mock_scheduler.create_recurring_booking.call_args
        assert args.args[1:] == ("weekly", 4)
        assert args.kwargs["conflict_policy"] is None

    def test_add_prompts_for_missing_fields(self, runner, mock_scheduler):
        mock_scheduler.create_booking.return_value = Booking(id=6, room_name="Vergaderzaal 100", date=DAY,
                                                             title="Overleg")
        user_input = "\n".join(["Vergaderzaal 100", "2024-06-10", "10:00", "11:00", "Overleg", "Smit"]) + "\n"
        result = runner.invoke(cli, ["bookings", "add"], input=user_input)
        assert result.exit_code == 0
        draft = mock_scheduler.create_booking.call_args.args[0]
        assert draft.room_name == "Vergaderzaal 100"
        assert draft.date == DAY
        assert (draft.start_hour, draft.end_hour) == (10, 11)

    def test_edit_without_changes(self, runner, mock_scheduler):
        result = runner.invoke(cli, ["bookings", "edit", "1"])
        assert "No updates specified" in result.output
        mock_scheduler.update_booking.assert_not_called()

    def test_edit_resize(self, runner, mock_scheduler):
        mock_scheduler.update_booking.return_value = TRAINING
        result = runner.invoke(cli, ["bookings", "edit", "1", "--end", "12:30", "--notes", "Koffie"])
        assert result.exit_code == 0
        mock_scheduler.update_booking.assert_called_once_with(
            1, {'notes': 'Koffie', 'end_hour': 12, 'end_minute': 30},
        )

    def test_edit_bad_time(self, runner, mock_scheduler):
        result = runner.invoke(cli, ["bookings", "edit", "1", "--start", "half ten"])
        assert "Invalid:" in result.output
        mock_scheduler.update_booking.assert_not_called()

    def test_move(self, runner, mock_scheduler):
        mock_scheduler.move_booking.return_value = Booking(
            id=1, room_name="West", date=DAY, start_hour=14, start_minute=30, end_hour=17, end_minute=30,
        )
        result = runner.invoke(cli, ["bookings", "move", "1", "West", "14:30"])
        assert result.exit_code == 0
        assert "Moved booking #1 to West 14:30–17:30" in result.output
        mock_scheduler.move_booking.assert_called_once_with(1, "West", 14, 30)

    def test_move_conflict(self, runner, mock_scheduler):
        mock_scheduler.move_booking.side_effect = ConflictError([TRAINING])
        result = runner.invoke(cli, ["bookings", "move", "2", "Oost", "10:00"])
        assert "Conflict:" in result.output

    def test_copy_with_skipped(self, runner, mock_scheduler):
        copy = Booking(id=20, room_name="Oost", date=date(2024, 6, 17), title="Training")
        skipped = Booking(room_name="Oost", date=date(2024, 6, 24), title="Training")
        mock_scheduler.copy_booking.return_value = BatchPlan(accepted=[copy], skipped=[skipped])
        result = runner.invoke(cli, ["bookings", "copy", "1", "2024-06-17", "2024-06-24", "--policy", "skip"])
        assert result.exit_code == 0
        assert "Created 1 booking(s)" in result.output
        assert "Skipped 1" in result.output
        mock_scheduler.copy_booking.assert_called_once_with(
            1, [date(2024, 6, 17), date(2024, 6, 24)], conflict_policy="skip",
        )

    def test_delete_confirmed(self, runner, mock_scheduler):
        mock_scheduler.delete_booking.return_value = True
        result = runner.invoke(cli, ["bookings", "delete", "1"], input="y\n")
        assert "Deleted booking #1" in result.output

    def test_delete_cancelled(self, runner, mock_scheduler):
        result = runner.invoke(cli, ["bookings", "delete", "1"], input="n\n")
        assert "Cancelled" in result.output
        mock_scheduler.delete_booking.assert_not_called()

    def test_delete_missing(self, runner, mock_scheduler):
        mock_scheduler.delete_booking.return_value = False
        result = runner.invoke(cli, ["bookings", "delete", "9", "--yes"])
        assert "not found" in result.output


# ---------------------------------------------------------------------------
# inquiries
# ---------------------------------------------------------------------------

class TestInquiries:

    def test_list(self, runner, mock_inquiries):
        mock_inquiries.list_inquiries.return_value = [INQUIRY]
        result = runner.invoke(cli, ["inquiries", "list", "--status", "new"])
        assert result.exit_code == 0
        assert "De Vries" in result.output
        mock_inquiries.list_inquiries.assert_called_once_with(status="new")

    def test_show_with_linked_bookings(self, runner, mock_inquiries):
        mock_inquiries.get_inquiry.return_value = INQUIRY
        mock_inquiries.get_inquiry_bookings.return_value = [TRAINING]
        result = runner.invoke(cli, ["inquiries", "show", "7"])
        assert "INQUIRY #7: Bedrijfsuitje" in result.output
        assert "Training" in result.output

    def test_status_change(self, runner, mock_inquiries):
        mock_inquiries.change_inquiry_status.return_value = Inquiry(id=7, status="quoted")
        result = runner.invoke(cli, ["inquiries", "status", "7", "quoted"])
        assert "is now 'quoted'" in result.output

    def test_status_rejects_unknown_stage(self, runner, mock_inquiries):
        result = runner.invoke(cli, ["inquiries", "status", "7", "won"])
        assert result.exit_code != 0
        mock_inquiries.change_inquiry_status.assert_not_called()

    def test_schedule_with_options(self, runner, mock_inquiries):
        booking = Booking(id=30, room_name="West", date=date(2024, 6, 11), start_hour=13, end_hour=17,
                          status="confirmed", inquiry_id=7)
        mock_inquiries.get_inquiry.return_value = INQUIRY
        mock_inquiries.convert_inquiry.return_value = ConversionResult(
            inquiry=Inquiry(id=7, status="reserved"), bookings=[booking],
        )
        result = runner.invoke(cli, ["inquiries", "schedule", "7",
                                     "--option", "2024-06-11", "West", "13:00", "17:00", "confirmed"])
        assert result.exit_code == 0
        assert "Created 1 booking(s) for inquiry #7" in result.output
        assert "Inquiry stage: reserved" in result.output
        options = mock_inquiries.convert_inquiry.call_args.args[1]
        assert options[0].room_name == "West"
        assert (options[0].start_hour, options[0].end_hour, options[0].status) == (13, 17, "confirmed")

    def test_schedule_prompts_for_options(self, runner, mock_inquiries):
        mock_inquiries.get_inquiry.return_value = INQUIRY
        mock_inquiries.convert_inquiry.return_value = ConversionResult(inquiry=Inquiry(id=7, status="option"))
        # one option, accept the preferred date and room, 18:00–22:00 as option
        user_input = "\n".join(["1", "", "", "18:00", "22:00", "option"]) + "\n"
        result = runner.invoke(cli, ["inquiries", "schedule", "7"], input=user_input)
        assert result.exit_code == 0
        option = mock_inquiries.convert_inquiry.call_args.args[1][0]
        assert option.date == date(2024, 6, 11)
        assert option.room_name == "West"
        assert (option.start_hour, option.end_hour) == (18, 22)

    def test_schedule_conflict_changes_nothing(self, runner, mock_inquiries):
        mock_inquiries.get_inquiry.return_value = INQUIRY
        mock_inquiries.convert_inquiry.side_effect = ConflictError([TRAINING])
        result = runner.invoke(cli, ["inquiries", "schedule", "7",
                                     "--option", "2024-06-10", "Oost", "11:00", "13:00", "confirmed"])
        assert "Conflict:" in result.output
        assert "Created" not in result.output

    def test_schedule_bad_option_status(self, runner, mock_inquiries):
        mock_inquiries.get_inquiry.return_value = INQUIRY
        result = runner.invoke(cli, ["inquiries", "schedule", "7",
                                     "--option", "2024-06-10", "Oost", "11:00", "13:00", "reserved"])
        assert "Invalid: Status" in result.output
        mock_inquiries.convert_inquiry.assert_not_called()

    def test_schedule_unknown_inquiry(self, runner, mock_inquiries):
        mock_inquiries.get_inquiry.return_value = None
        result = runner.invoke(cli, ["inquiries", "schedule", "99"])
        assert "not found" in result.output


# ---------------------------------------------------------------------------
# rooms / sync
# ---------------------------------------------------------------------------

class TestVenue:

    def test_rooms_list_merges_settings(self, runner, mock_store):
        mock_store.list_room_settings.return_value = [
            RoomSetting(room_name="Vergaderzaal 100", display_name="Zaal 100", max_guests=60),
        ]
        result = runner.invoke(cli, ["rooms", "list"])
        assert result.exit_code == 0
        assert "Zaal 100" in result.output
        assert "60" in result.output
        assert "BBQ- en Borrelterras" in result.output

    def test_rooms_list_without_database(self, runner, mock_store):
        mock_store.list_room_settings.side_effect = PersistenceError("down")
        result = runner.invoke(cli, ["rooms", "list"])
        assert result.exit_code == 0
        assert "Vergaderzaal 100" in result.output

    def test_sync_flush(self, runner):
        with patch("venuecrm.cli.main.config") as cfg, patch("venuecrm.cli.main.sync") as mock_sync:
            cfg.CRM_SYNC_URL = "https://crm.example.com/hooks"
            mock_sync.deliver_pending.return_value = {'delivered': 2, 'failed': 1, 'abandoned': 0}
            result = runner.invoke(cli, ["sync", "flush", "--limit", "10"])
        assert "Delivered: 2" in result.output
        mock_sync.deliver_pending.assert_called_once_with(limit=10)

    def test_sync_flush_without_url(self, runner):
        with patch("venuecrm.cli.main.config") as cfg, patch("venuecrm.cli.main.sync") as mock_sync:
            cfg.CRM_SYNC_URL = ""
            result = runner.invoke(cli, ["sync", "flush"])
        assert "not set" in result.output
        mock_sync.deliver_pending.assert_not_called()

    def test_sync_flush_with_database_down(self, runner):
        @contextmanager
        def broken_cursor(dict_cursor=True):
            raise psycopg2.OperationalError("could not connect to server")
            yield

        with patch.object(config, "CRM_SYNC_URL", "https://crm.example.com/hooks"), \
             patch("venuecrm.engine.store.get_db_cursor", broken_cursor), \
             patch("venuecrm.engine.sync.requests.post") as post:
            result = runner.invoke(cli, ["sync", "flush"])
        assert not isinstance(result.exception, psycopg2.Error)
        assert "Database error" in result.output
        post.assert_not_called()
