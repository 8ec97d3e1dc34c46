"""
Offline console demo: walks through the booking lifecycle in the terminal.

Uses the real scheduling core on a seeded store. No web server and no
payment gateway; the payment check is a seeded mock.

Usage:
    python console_demo.py
    python console_demo.py --scenario conflict
    python console_demo.py --scenario block --date 2024-06-01
    python console_demo.py --sql
"""

import argparse
import threading
from datetime import date, timedelta
from typing import Optional

from spa_scheduler.config import settings
from spa_scheduler.errors import ConflictError, PaymentDeclinedError, SchedulingError
from spa_scheduler.notifications import RecordingSubscriber
from spa_scheduler.payments import MockPaymentVerifier
from spa_scheduler.scheduling.scheduler import SpaScheduler
from spa_scheduler.schemas.booking_schema import Booking
from spa_scheduler.seed import SeededCatalog, seed_catalog
from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.store.memory_store import MemoryStore
from spa_scheduler.store.sql_store import SqlStore

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

MAX_SLOTS_SHOWN = 6


class ConsoleDemo:
    """Drives a seeded scheduler through scripted scenarios."""

    SCENARIOS = ("booking", "conflict", "block")

    def __init__(self, store: SchedulerStore, day: date, seed: Optional[int] = 7) -> None:
        self.events = RecordingSubscriber()
        self.scheduler = SpaScheduler(store, payment_verifier=MockPaymentVerifier(seed=seed))
        self.scheduler.notifier.subscribe(self.events)
        self.catalog: SeededCatalog = seed_catalog(self.scheduler.catalog)
        self.day = day

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def warn(self, text: str) -> None:
        print(f"{YELLOW}{text}{RESET}")

    def _header(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  SPA SCHEDULER - {title}{RESET}")
        print(f"{BOLD}  Business: {settings.business_name} | Date: {self.day.isoformat()}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _footer(self, scenario: str) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
        print(f"{DIM}  Events: {', '.join(kind.value for kind, _ in self.events.events)}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    def show_availability(self, duration: int) -> None:
        slots = self.scheduler.get_availability(self.day, duration)
        self.say(f"{len(slots)} start time(s) open for {duration} minutes:")
        for slot in slots[:MAX_SLOTS_SHOWN]:
            names = ", ".join(t.name for t in slot.technicians)
            print(f"  {BLUE}{slot.start_time}-{slot.end_time}{RESET}  {names}")
        if len(slots) > MAX_SLOTS_SHOWN:
            self.system_log(f"... {len(slots) - MAX_SLOTS_SHOWN} more")

    def book(self, customer: str, phone: str, technician_index: int, start: str,
             duration: int = 60, addon_indexes: tuple[int, ...] = ()) -> Booking:
        technician = self.catalog.technicians[technician_index]
        service = self.catalog.services[0]
        booking = self.scheduler.create_booking(
            {
                "customer_name": customer,
                "customer_phone": phone,
                "technician_id": technician.id,
                "service_id": service.id,
                "duration": duration,
                "additional_service_ids": [
                    self.catalog.additional_services[i].id for i in addon_indexes
                ],
                "booking_date": self.day,
                "start_time": start,
            }
        )
        self.say(
            f"Booked {booking.booking_code}: {booking.customer_name} with "
            f"{booking.technician_name} {booking.start_time}-{booking.end_time}"
        )
        self.system_log(
            f"Total {booking.total_amount:,} VND, deposit {booking.deposit_amount:,} VND, "
            f"QR {booking.qr_payload}"
        )
        return booking

    def pay(self, booking: Booking) -> None:
        try:
            confirmed = self.scheduler.verify_payment(booking.id)
        except PaymentDeclinedError as exc:
            self.warn(f"Payment declined: {exc}")
            return
        self.say(f"Payment verified, {confirmed.booking_code} is {confirmed.status.value}")

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    def run_booking(self) -> None:
        self.show_availability(60)
        booking = self.book("Nguyễn Văn An", "0901 234 567", 0, "14:00", addon_indexes=(0, 1))
        self.pay(booking)
        found = self.scheduler.lookup_booking_by_code(booking.booking_code.lower())
        self.system_log(f"Lookup by code -> {found.booking_code} ({found.status.value})")
        self.show_availability(60)

    def run_conflict(self) -> None:
        technician = self.catalog.technicians[1]
        results: list[str] = []
        barrier = threading.Barrier(2)

        def attempt(name: str, phone: str) -> None:
            barrier.wait()
            try:
                booking = self.book(name, phone, 1, "10:00", duration=90)
                results.append(f"{name}: {booking.booking_code}")
            except ConflictError as exc:
                results.append(f"{name}: conflict ({exc})")

        self.say(f"Two customers race for {technician.name} at 10:00...")
        threads = [
            threading.Thread(target=attempt, args=("Trần Thị Bình", "0912000111")),
            threading.Thread(target=attempt, args=("Lê Văn Cường", "0912000222")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for line in results:
            self.system_log(line)
        available = self.scheduler.get_technician_availability(technician.id, self.day, 90)
        self.system_log(f"{technician.name} still free at: {', '.join(available[:8])} ...")

    def run_block(self) -> None:
        technician = self.catalog.technicians[2]
        self.book("Phạm Thị Dung", "0987654321", 2, "09:30")
        slot = self.scheduler.block_time(technician.id, self.day, "09:00", "12:00", "Nghỉ phép")
        self.warn(f"Blocked {technician.name} {slot.start_time}-{slot.end_time} ({slot.reason})")
        available = self.scheduler.get_technician_availability(technician.id, self.day)
        self.system_log(f"{technician.name} first free start: {available[0] if available else '-'}")
        self.scheduler.unblock_time(slot.id)
        available = self.scheduler.get_technician_availability(technician.id, self.day)
        self.system_log(f"After unblock: {', '.join(available[:4])} ...")

    def run_scenario(self, scenario: str) -> None:
        if scenario not in self.SCENARIOS:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return
        self._header(f"Scenario: {scenario}")
        try:
            getattr(self, f"run_{scenario}")()
        except SchedulingError as exc:
            print(f"{RED}{type(exc).__name__}: {exc}{RESET}")
        self._footer(scenario)


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=ConsoleDemo.SCENARIOS,
        default="booking",
        help="Which pre-scripted scenario to play",
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=date.today() + timedelta(days=1),
        help="Booking date (YYYY-MM-DD), defaults to tomorrow",
    )
    parser.add_argument(
        "--sql",
        action="store_true",
        help="Use the SQL store at DATABASE_URL instead of the in-memory store",
    )
    args = parser.parse_args()

    if args.sql:
        store: SchedulerStore = SqlStore(settings.database.url)
        store.create_schema()
    else:
        store = MemoryStore()
    ConsoleDemo(store, args.date).run_scenario(args.scenario)


if __name__ == "__main__":
    main()
