#!/usr/bin/env python3
"""
Venue CRM Terminal CLI
Command-line interface for the room calendar, inquiry pipeline and CRM sync.
"""

import logging
import click
from datetime import date
from typing import Optional

from venuecrm.config import config
from venuecrm.engine import scheduler, inquiries, store, sync
from venuecrm.engine.errors import ConflictError, PersistenceError, SchedulingError, ValidationError
from venuecrm.engine.sync import register_sync_handlers
from venuecrm.engine.timegrid import format_time, parse_time
from venuecrm.db.connection import init_schema
from venuecrm.logging_config import configure_logging, log_call
from venuecrm.models import (
    Booking, DateOption, BOOKING_STATUSES, PIPELINE_STAGES, PREPARATION_STATUSES, RECURRENCE_TYPES,
)

CONFLICT_POLICY_CHOICES = list(scheduler.CONFLICT_POLICIES)


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise click.BadParameter(f"{raw!r} is not a date — use YYYY-MM-DD")


@log_call
def _prompt_date(label: str, default: Optional[date] = None) -> Optional[date]:
    """Prompt for a date, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("venuecrm")
    default_str = str(default) if default else ""
    while True:
        raw = click.prompt(label, default=default_str, show_default=bool(default_str)) or ""
        if not raw:
            return None
        try:
            return date.fromisoformat(raw)
        except ValueError:
            logger.debug(f"_prompt_date | rejected input={raw!r}")
            click.echo("  Invalid format — please use YYYY-MM-DD.", err=True)


@log_call
def _prompt_time(label: str, default: str) -> tuple:
    """Prompt for HH:MM, re-prompting until it parses."""
    logger = logging.getLogger("venuecrm")
    while True:
        raw = click.prompt(label, default=default)
        try:
            return parse_time(raw)
        except ValidationError as e:
            logger.debug(f"_prompt_time | rejected input={raw!r}")
            click.echo(f"  {e}", err=True)


def _time_range(b) -> str:
    return f"{format_time(b.start_hour, b.start_minute)}–{format_time(b.end_hour, b.end_minute)}"


def _report(e: SchedulingError, action: str):
    """Print a scheduling error in the wording the user should see."""
    logger = logging.getLogger("venuecrm")
    if isinstance(e, ConflictError):
        logger.warning(f"{action} | conflict: {e}")
        click.echo(f"{e}", err=True)
        for b in e.conflicts:
            click.echo(f"  ✗ #{b.id} {b.title} | {b.room_name} | {b.date} {_time_range(b)} | {b.status}", err=True)
    elif isinstance(e, ValidationError):
        logger.warning(f"{action} | invalid: {e}")
        click.echo(f"Invalid: {e}", err=True)
    elif isinstance(e, PersistenceError):
        logger.error(f"{action} | persistence failure: {e}", exc_info=True)
        click.echo(f"Database error: {e}", err=True)
        click.echo("Nothing was saved.", err=True)
    else:
        logger.error(f"{action} | {type(e).__name__}: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)


def _print_bookings(bookings):
    click.echo(f"{'ID':<6} {'Date':<11} {'Time':<12} {'Room':<24} {'Title':<28} {'Status':<10}")
    click.echo("-" * 95)
    for b in bookings:
        click.echo(
            f"{b.id:<6} {str(b.date):<11} {_time_range(b):<12} "
            f"{b.room_name[:22]:<24} {b.title[:26]:<28} {b.status:<10}"
        )


def _print_batch(plan):
    click.echo(f"\n✓ Created {len(plan.accepted)} booking(s)")
    for b in plan.accepted:
        click.echo(f"  #{b.id} {b.date} {_time_range(b)} {b.room_name} ({b.status})")
    if plan.skipped:
        click.echo(f"\n⚠️  Skipped {len(plan.skipped)} conflicting occurrence(s):")
        for b in plan.skipped:
            click.echo(f"  {b.date} {_time_range(b)} {b.room_name}")


@click.group()
def cli():
    """Venue CRM - Room Calendar & Inquiry Pipeline"""
    configure_logging()
    register_sync_handlers()


# =============================================================================
# SETUP
# =============================================================================

@cli.group()
def db():
    """Database setup"""
    pass


@db.command('init')
@log_call
def db_init():
    """Create tables and constraints (idempotent)"""
    init_schema()
    click.echo("✓ Schema applied")


@cli.group()
def rooms():
    """Venue rooms"""
    pass


@rooms.command('list')
@log_call
def rooms_list():
    """List calendar rooms with display names and capacity"""
    try:
        settings = {s.room_name: s for s in store.list_room_settings()}
    except PersistenceError as e:
        logging.getLogger("venuecrm").warning(f"rooms_list | room settings unavailable: {e}")
        settings = {}

    click.echo(f"\n{'Room':<26} {'Display name':<26} {'Max guests':<11} {'Enabled':<8}")
    click.echo("-" * 75)
    for room in config.VENUE_ROOMS:
        s = settings.get(room)
        display = (s.display_name if s and s.display_name else room)[:24]
        max_guests = str(s.max_guests) if s and s.max_guests else '-'
        enabled = 'no' if s and not s.enabled else 'yes'
        click.echo(f"{room[:24]:<26} {display:<26} {max_guests:<11} {enabled:<8}")


# =============================================================================
# BOOKINGS COMMANDS
# =============================================================================

@cli.group()
def bookings():
    """Manage room bookings"""
    pass


@bookings.command('list')
@click.option('--date', 'on_date', help='Only this date (YYYY-MM-DD)')
@click.option('--from', 'date_from', help='From date (YYYY-MM-DD)')
@click.option('--to', 'date_to', help='Until date (YYYY-MM-DD)')
@click.option('--room', help='Filter by room')
@click.option('--status', type=click.Choice(BOOKING_STATUSES), help='confirmed or option')
@log_call
def bookings_list(on_date, date_from, date_to, room, status):
    """List bookings"""
    results = scheduler.list_bookings(
        room_name=room,
        booking_date=_parse_date(on_date) if on_date else None,
        date_from=_parse_date(date_from) if date_from else None,
        date_to=_parse_date(date_to) if date_to else None,
        status=status,
    )

    if not results:
        click.echo("No bookings found.")
        return

    click.echo(f"\nFound {len(results)} bookings:\n")
    _print_bookings(results)


@bookings.command('day')
@click.argument('day', required=False)
@log_call
def bookings_day(day):
    """Show one day's calendar, room by room (default: today)"""
    on_date = _parse_date(day) if day else date.today()
    schedule = scheduler.get_day_schedule(on_date)

    click.echo(f"\n{'='*80}")
    click.echo(f"CALENDAR {on_date.strftime('%A %d %B %Y')}")
    click.echo(f"{'='*80}")
    for room, room_bookings in schedule.items():
        click.echo(f"\n{room}")
        if not room_bookings:
            click.echo("  (free)")
        for b in room_bookings:
            marker = '■' if b.status == 'confirmed' else '□'
            click.echo(f"  {marker} {_time_range(b)}  {b.title}  — {b.contact_name or '?'}  (#{b.id})")
    click.echo()


@bookings.command('show')
@click.argument('booking_id', type=int)
@log_call
def bookings_show(booking_id):
    """Show full booking details"""
    logger = logging.getLogger("venuecrm")
    b = store.get_booking(booking_id)

    if not b:
        logger.warning(f"bookings_show | booking_id={booking_id} not found")
        click.echo(f"Booking ID {booking_id} not found.", err=True)
        return

    company_name = None
    if b.contact_id:
        try:
            contact = store.get_contact(b.contact_id)
            if contact and contact.company_id:
                company = store.get_company(contact.company_id)
                company_name = company.name if company else None
        except PersistenceError as e:
            logger.warning(f"bookings_show | contact lookup failed for {b.contact_id}: {e}")

    click.echo(f"\n{'='*80}")
    click.echo(f"BOOKING #{b.id}: {b.title}")
    click.echo(f"{'='*80}")
    click.echo(f"Room:        {b.room_name}")
    click.echo(f"Date:        {b.date}")
    click.echo(f"Time:        {_time_range(b)}")
    click.echo(f"Status:      {b.status}")
    click.echo(f"Contact:     {b.contact_name or '(not set)'}")
    if company_name:
        click.echo(f"Company:     {company_name}")
    click.echo(f"Guests:      {b.guest_count or '(not set)'}")
    click.echo(f"Setup:       {b.room_setup or '(not set)'}")
    click.echo(f"Preparation: {b.preparation_status}")
    if b.inquiry_id:
        click.echo(f"Inquiry:     #{b.inquiry_id}")
    if b.requirements:
        click.echo(f"\nRequirements:\n{b.requirements}")
    if b.notes:
        click.echo(f"\nNotes:\n{b.notes}")
    click.echo()


@bookings.command('add')
@click.option('--room', help='Room name')
@click.option('--date', 'on_date', help='Date (YYYY-MM-DD)')
@click.option('--start', help='Start time HH:MM')
@click.option('--end', help='End time HH:MM')
@click.option('--title', help='Event name')
@click.option('--contact', 'contact_name', help='Contact name')
@click.option('--status', type=click.Choice(BOOKING_STATUSES), default='confirmed', show_default=True)
@click.option('--repeat', type=click.Choice(RECURRENCE_TYPES), default='none', show_default=True,
              help='Recurrence')
@click.option('--count', default=1, show_default=True, help='Number of occurrences')
@click.option('--on', 'extra_dates', multiple=True, help='Explicit date (repeatable, with --repeat specific_dates)')
@click.option('--policy', type=click.Choice(CONFLICT_POLICY_CHOICES), default=None,
              help='What to do with conflicting occurrences')
@log_call
def bookings_add(room, on_date, start, end, title, contact_name, status, repeat, count, extra_dates, policy):
    """Add a booking (prompts for anything not given)"""
    click.echo("\n=== NEW BOOKING ===\n")

    room = room or click.prompt("Room", type=click.Choice(config.VENUE_ROOMS))
    booking_date = _parse_date(on_date) if on_date else _prompt_date("Date (YYYY-MM-DD)", default=date.today())
    start_hour, start_minute = parse_time(start) if start else _prompt_time("Start (HH:MM)", "09:00")
    end_hour, end_minute = parse_time(end) if end else _prompt_time("End (HH:MM)", "12:00")
    title = title or click.prompt("Title", default="New booking")
    if contact_name is None:
        contact_name = click.prompt("Contact name", default="", show_default=False)

    template = Booking(
        room_name=room,
        date=booking_date,
        start_hour=start_hour,
        start_minute=start_minute,
        end_hour=end_hour,
        end_minute=end_minute,
        title=title,
        contact_name=contact_name,
        status=status,
    )

    try:
        if repeat == 'none':
            created = scheduler.create_booking(template)
            click.echo(f"\n✓ Created booking #{created.id}: {created.title} "
                       f"({created.room_name}, {created.date} {_time_range(created)})")
        else:
            dates = [_parse_date(d) for d in extra_dates]
            if repeat == 'specific_dates' and booking_date:
                dates.append(booking_date)
            plan = scheduler.create_recurring_booking(template, repeat, count, dates=dates, conflict_policy=policy)
            _print_batch(plan)
    except SchedulingError as e:
        _report(e, "bookings_add")


@bookings.command('edit')
@click.argument('booking_id', type=int)
@click.option('--title', help='New title')
@click.option('--room', help='New room')
@click.option('--date', 'on_date', help='New date (YYYY-MM-DD)')
@click.option('--start', help='New start HH:MM')
@click.option('--end', help='New end HH:MM')
@click.option('--status', type=click.Choice(BOOKING_STATUSES), help='New status')
@click.option('--guests', type=int, help='Guest count')
@click.option('--setup', help='Room setup')
@click.option('--prep', type=click.Choice(PREPARATION_STATUSES), help='Preparation status')
@click.option('--notes', help='Notes')
@log_call
def bookings_edit(booking_id, title, room, on_date, start, end, status, guests, setup, prep, notes):
    """Edit or resize a booking (use options to set fields)"""
    updates = {}
    if title:
        updates['title'] = title
    if room:
        updates['room_name'] = room
    if on_date:
        updates['date'] = _parse_date(on_date)
    if status:
        updates['status'] = status
    if guests is not None:
        updates['guest_count'] = guests
    if setup:
        updates['room_setup'] = setup
    if prep:
        updates['preparation_status'] = prep
    if notes:
        updates['notes'] = notes

    try:
        if start:
            updates['start_hour'], updates['start_minute'] = parse_time(start)
        if end:
            updates['end_hour'], updates['end_minute'] = parse_time(end)

        if not updates:
            click.echo("No updates specified. Use --title, --room, --date, --start, --end, --status, ...", err=True)
            return

        saved = scheduler.update_booking(booking_id, updates)
        click.echo(f"✓ Updated booking #{saved.id} ({saved.room_name}, {saved.date} {_time_range(saved)})")
    except SchedulingError as e:
        _report(e, "bookings_edit")


@bookings.command('move')
@click.argument('booking_id', type=int)
@click.argument('room')
@click.argument('start')
@log_call
def bookings_move(booking_id, room, start):
    """Move a booking to ROOM at START (HH:MM), keeping its length"""
    try:
        hour, minute = parse_time(start)
        saved = scheduler.move_booking(booking_id, room, hour, minute)
        click.echo(f"✓ Moved booking #{saved.id} to {saved.room_name} {_time_range(saved)}")
    except SchedulingError as e:
        _report(e, "bookings_move")


@bookings.command('copy')
@click.argument('booking_id', type=int)
@click.argument('dates', nargs=-1, required=True)
@click.option('--policy', type=click.Choice(CONFLICT_POLICY_CHOICES), default=None,
              help='What to do with conflicting copies')
@log_call
def bookings_copy(booking_id, dates, policy):
    """Copy a booking onto one or more DATES (YYYY-MM-DD)"""
    try:
        plan = scheduler.copy_booking(booking_id, [_parse_date(d) for d in dates], conflict_policy=policy)
        _print_batch(plan)
    except SchedulingError as e:
        _report(e, "bookings_copy")


@bookings.command('delete')
@click.argument('booking_id', type=int)
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@log_call
def bookings_delete(booking_id, yes):
    """Delete a booking"""
    if not yes and not click.confirm(f"Delete booking #{booking_id}?"):
        click.echo("Cancelled.")
        return
    try:
        if scheduler.delete_booking(booking_id):
            click.echo(f"✓ Deleted booking #{booking_id}")
        else:
            click.echo(f"Booking #{booking_id} not found", err=True)
    except SchedulingError as e:
        _report(e, "bookings_delete")


# =============================================================================
# INQUIRY COMMANDS
# =============================================================================

@cli.group('inquiries')
def inquiries_group():
    """Inquiry pipeline"""
    pass


@inquiries_group.command('list')
@click.option('--status', type=click.Choice(PIPELINE_STAGES), help='Filter by pipeline stage')
@log_call
def inquiries_list(status):
    """List inquiries"""
    results = inquiries.list_inquiries(status=status)

    if not results:
        click.echo("No inquiries found.")
        return

    click.echo(f"\nFound {len(results)} inquiries:\n")
    click.echo(f"{'ID':<6} {'Contact':<26} {'Event':<24} {'Preferred':<11} {'Guests':<7} {'Stage':<14}")
    click.echo("-" * 92)
    for i in results:
        click.echo(
            f"{i.id:<6} {i.contact_name[:24]:<26} {i.event_type[:22]:<24} "
            f"{str(i.preferred_date or '-'):<11} {i.guest_count:<7} {i.status:<14}"
        )


@inquiries_group.command('show')
@click.argument('inquiry_id', type=int)
@log_call
def inquiries_show(inquiry_id):
    """Show an inquiry and the bookings made from it"""
    logger = logging.getLogger("venuecrm")
    inquiry = inquiries.get_inquiry(inquiry_id)

    if not inquiry:
        logger.warning(f"inquiries_show | inquiry_id={inquiry_id} not found")
        click.echo(f"Inquiry ID {inquiry_id} not found.", err=True)
        return

    click.echo(f"\n{'='*80}")
    click.echo(f"INQUIRY #{inquiry.id}: {inquiry.event_type}")
    click.echo(f"{'='*80}")
    click.echo(f"Contact:     {inquiry.contact_name}")
    click.echo(f"Stage:       {inquiry.status}")
    click.echo(f"Preferred:   {inquiry.preferred_date or '(not set)'}")
    click.echo(f"Room pref.:  {inquiry.room_preference or '(not set)'}")
    click.echo(f"Guests:      {inquiry.guest_count}")
    click.echo(f"Budget:      {inquiry.budget if inquiry.budget is not None else '(not set)'}")
    click.echo(f"Source:      {inquiry.source}")
    if inquiry.message:
        click.echo(f"\nMessage:\n{inquiry.message}")

    click.echo(f"\n{'='*80}")
    click.echo("SCHEDULED")
    click.echo(f"{'='*80}")
    linked = inquiries.get_inquiry_bookings(inquiry_id)
    if linked:
        _print_bookings(linked)
    else:
        click.echo("Nothing scheduled yet.")
    click.echo()


@inquiries_group.command('status')
@click.argument('inquiry_id', type=int)
@click.argument('stage', type=click.Choice(PIPELINE_STAGES))
@log_call
def inquiries_status(inquiry_id, stage):
    """Move an inquiry to another pipeline STAGE"""
    try:
        updated = inquiries.change_inquiry_status(inquiry_id, stage)
        click.echo(f"✓ Inquiry #{updated.id} is now '{updated.status}'")
    except SchedulingError as e:
        _report(e, "inquiries_status")


def _prompt_options(inquiry) -> list:
    count = click.prompt("How many date options (1-3)", type=click.IntRange(1, config.MAX_DATE_OPTIONS), default=1)
    options = []
    for n in range(1, count + 1):
        click.echo(f"\n-- Option {n} --")
        option_date = _prompt_date("Date (YYYY-MM-DD, Enter to skip)", default=inquiry.preferred_date)
        room = click.prompt("Room", default=inquiry.room_preference or "", show_default=bool(inquiry.room_preference)) or None
        start_hour, start_minute = _prompt_time("Start (HH:MM)", "09:00")
        end_hour, end_minute = _prompt_time("End (HH:MM)", "12:00")
        status = click.prompt("Status", type=click.Choice(BOOKING_STATUSES), default='option')
        options.append(DateOption(option_date, room, start_hour, start_minute, end_hour, end_minute, status))
    return options


@inquiries_group.command('schedule')
@click.argument('inquiry_id', type=int)
@click.option('--option', 'raw_options', multiple=True, type=(str, str, str, str, str),
              help='DATE ROOM START END STATUS (repeat up to 3 times)')
@click.option('--repeat', type=click.Choice(RECURRENCE_TYPES), default='none', show_default=True,
              help='Recurrence applied to every option')
@click.option('--count', default=1, show_default=True, help='Occurrences per option')
@click.option('--policy', type=click.Choice(CONFLICT_POLICY_CHOICES), default=None,
              help='What to do with conflicting occurrences')
@log_call
def inquiries_schedule(inquiry_id, raw_options, repeat, count, policy):
    """Turn an inquiry into bookings from 1-3 date options"""
    logger = logging.getLogger("venuecrm")
    inquiry = inquiries.get_inquiry(inquiry_id)
    if not inquiry:
        logger.warning(f"inquiries_schedule | inquiry_id={inquiry_id} not found")
        click.echo(f"Inquiry ID {inquiry_id} not found.", err=True)
        return

    click.echo(f"\n=== SCHEDULE INQUIRY #{inquiry.id}: {inquiry.event_type} ({inquiry.contact_name}) ===\n")

    try:
        if raw_options:
            options = []
            for raw_date, room, start, end, status in raw_options:
                if status not in BOOKING_STATUSES:
                    raise ValidationError(f"Status must be one of: {', '.join(BOOKING_STATUSES)}")
                start_hour, start_minute = parse_time(start)
                end_hour, end_minute = parse_time(end)
                options.append(DateOption(_parse_date(raw_date), room, start_hour, start_minute,
                                          end_hour, end_minute, status))
        else:
            options = _prompt_options(inquiry)

        result = inquiries.convert_inquiry(inquiry_id, options, repeat, count, conflict_policy=policy)
    except SchedulingError as e:
        _report(e, "inquiries_schedule")
        return

    click.echo(f"\n✓ Created {len(result.bookings)} booking(s) for inquiry #{inquiry_id}")
    for b in result.bookings:
        click.echo(f"  #{b.id} {b.date} {_time_range(b)} {b.room_name} ({b.status})")
    if result.skipped:
        click.echo(f"⚠️  Skipped {len(result.skipped)} conflicting occurrence(s)")
    click.echo(f"Inquiry stage: {result.inquiry.status}")


# =============================================================================
# CRM SYNC
# =============================================================================

@cli.group('sync')
def sync_group():
    """Outbound CRM synchronisation"""
    pass


@sync_group.command('flush')
@click.option('--limit', default=50, help='Max messages to deliver (default: 50)')
@log_call
def sync_flush(limit):
    """Deliver queued sync messages to the external CRM"""
    if not config.CRM_SYNC_URL:
        click.echo("CRM_SYNC_URL is not set — messages stay queued.", err=True)
        return
    try:
        stats = sync.deliver_pending(limit=limit)
    except SchedulingError as e:
        _report(e, "sync_flush")
        return
    click.echo(f"Delivered: {stats['delivered']}  Retry later: {stats['failed']}  Abandoned: {stats['abandoned']}")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
