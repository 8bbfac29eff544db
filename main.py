#!/usr/bin/env python3
"""
Venue CRM - Interactive Menu Launcher
Run this file to reach the calendar and inquiry commands through a menu.

Usage:
    python main.py
"""

import subprocess
import sys
import os
from datetime import date

from venuecrm.models import PIPELINE_STAGES

PYTHON = sys.executable
CRM = [PYTHON, "venuecrm/cli/main.py"]

# Project root on PYTHONPATH so 'venuecrm' is importable
ENV = os.environ.copy()
ENV["PYTHONPATH"] = os.path.dirname(os.path.abspath(__file__))

STAGES = "/".join(PIPELINE_STAGES)


def run(args: list[str]):
    """Run a CLI command and return to the menu when done."""
    print()
    subprocess.run(CRM + args, env=ENV)
    print()
    input("  Press Enter to return to menu...")


def prompt(label: str, required: bool = True) -> str:
    """Prompt for input. Returns empty string if optional and skipped."""
    while True:
        value = input(f"  {label}: ").strip()
        if value:
            return value
        if not required:
            return ""
        print("  (required - please enter a value)")


def prompt_optional(label: str) -> str:
    return prompt(f"{label} (optional, Enter to skip)", required=False)


def clear():
    os.system("cls" if os.name == "nt" else "clear")


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def calendar_day():
    d = prompt_optional(f"Date YYYY-MM-DD (default: {date.today()})")
    run(["bookings", "day"] + ([d] if d else []))

def bookings_list():
    args = ["bookings", "list"]
    f = prompt_optional("From date (YYYY-MM-DD)")
    t = prompt_optional("Until date (YYYY-MM-DD)")
    r = prompt_optional("Room")
    s = prompt_optional("Status (confirmed/option)")
    if f: args += ["--from", f]
    if t: args += ["--to", t]
    if r: args += ["--room", r]
    if s: args += ["--status", s]
    run(args)

def bookings_show():
    bid = prompt("Booking ID")
    run(["bookings", "show", bid])

def bookings_add():
    args = ["bookings", "add"]
    repeat = prompt_optional("Repeat (weekly/biweekly/monthly/quarterly)")
    if repeat:
        args += ["--repeat", repeat, "--count", prompt("Number of occurrences")]
    run(args)

def bookings_move():
    bid = prompt("Booking ID")
    room = prompt("Target room")
    start = prompt("New start time (HH:MM)")
    run(["bookings", "move", bid, room, start])

def bookings_copy():
    bid = prompt("Booking ID")
    dates = prompt("Dates - space separated (YYYY-MM-DD ...)")
    run(["bookings", "copy", bid] + dates.split())

def bookings_edit():
    bid = prompt("Booking ID")
    args = ["bookings", "edit", bid]
    t = prompt_optional("New title")
    s = prompt_optional("New start (HH:MM)")
    e = prompt_optional("New end (HH:MM)")
    st = prompt_optional("New status (confirmed/option)")
    n = prompt_optional("New notes")
    if t: args += ["--title", t]
    if s: args += ["--start", s]
    if e: args += ["--end", e]
    if st: args += ["--status", st]
    if n: args += ["--notes", n]
    run(args)

def bookings_delete():
    bid = prompt("Booking ID")
    run(["bookings", "delete", bid])

def inquiries_list():
    args = ["inquiries", "list"]
    s = prompt_optional(f"Filter by stage ({STAGES})")
    if s: args += ["--status", s]
    run(args)

def inquiries_show():
    iid = prompt("Inquiry ID")
    run(["inquiries", "show", iid])

def inquiries_schedule():
    iid = prompt("Inquiry ID")
    args = ["inquiries", "schedule", iid]
    repeat = prompt_optional("Repeat every option (weekly/biweekly/monthly/quarterly)")
    if repeat:
        args += ["--repeat", repeat, "--count", prompt("Number of occurrences")]
    run(args)

def inquiries_status():
    iid = prompt("Inquiry ID")
    stage = prompt(f"New stage ({STAGES})")
    run(["inquiries", "status", iid, stage])

def rooms_list():
    run(["rooms", "list"])

def sync_flush():
    run(["sync", "flush"])


# =============================================================================
# MENU LAYOUT
# =============================================================================

MENU = [
    ("CALENDAR", [
        ("Day calendar",                 calendar_day),
        ("List bookings",                bookings_list),
        ("Show booking details",         bookings_show),
        ("Add booking",                  bookings_add),
        ("Move booking",                 bookings_move),
        ("Copy booking to dates",        bookings_copy),
        ("Edit booking",                 bookings_edit),
        ("Delete booking",               bookings_delete),
    ]),
    ("INQUIRIES", [
        ("List inquiries",               inquiries_list),
        ("Show inquiry",                 inquiries_show),
        ("Schedule inquiry",             inquiries_schedule),
        ("Change inquiry stage",         inquiries_status),
    ]),
    ("VENUE", [
        ("Rooms",                        rooms_list),
        ("Send queued CRM updates",      sync_flush),
    ]),
]


def print_menu():
    clear()
    print("=" * 50)
    print("   VENUE CRM - ROOM CALENDAR")
    print("=" * 50)

    n = 1
    numbering = {}  # display number -> handler

    for section, commands in MENU:
        print(f"\n  {section}")
        print(f"  {'-' * len(section)}")
        for label, handler in commands:
            print(f"  {n:>2}.  {label}")
            numbering[n] = handler
            n += 1

    print("\n" + "=" * 50)
    print("   0.  Exit")
    print("=" * 50)
    return numbering


def main():
    while True:
        numbering = print_menu()

        try:
            choice = input("\n  Select a command: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\n  Goodbye!\n")
            break

        if choice == "0" or choice.lower() in ("q", "quit", "exit"):
            print("\n  Goodbye!\n")
            break

        try:
            n = int(choice)
            if n in numbering:
                clear()
                numbering[n]()
            else:
                print(f"\n  Invalid selection: {choice}")
                input("  Press Enter to continue...")
        except ValueError:
            print("\n  Please enter a number.")
            input("  Press Enter to continue...")


if __name__ == "__main__":
    main()
