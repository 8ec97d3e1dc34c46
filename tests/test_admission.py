"""Tests for booking admission, payment, cancellation, and expiry."""

import re
from datetime import timedelta

import pytest

from spa_scheduler.errors import (
    ConflictError,
    DayRolloverError,
    DuplicateBookingCodeError,
    InvalidStateError,
    NotFoundError,
    PaymentDeclinedError,
    StoreError,
    ValidationError,
)
from spa_scheduler.notifications import EventType
from spa_scheduler.payments import StaticPaymentVerifier
from spa_scheduler.scheduling.calendar import OperatingCalendar
from spa_scheduler.scheduling.scheduler import SpaScheduler
from spa_scheduler.schemas.booking_schema import BookingRequest, BookingStatus
from tests.conftest import DAY, make_config, make_request


class TestCreateBooking:
    def test_creates_pending_booking(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        assert booking.id is not None
        assert booking.status == BookingStatus.PENDING
        assert booking.is_paid is False
        assert (booking.start_time, booking.end_time) == ("14:00", "15:00")
        assert booking.technician_name == "Chị Linh"
        assert booking.service_name == "Massage Toàn Body"

    def test_accepts_model_request(self, scheduler, linh, full_body):
        request = BookingRequest(**make_request(linh.id, full_body.id, "10:00"))
        assert scheduler.create_booking(request).start_time == "10:00"

    def test_total_and_deposit(self, scheduler, linh, full_body, seeded):
        hot_stone, cupping = seeded.additional_services[0], seeded.additional_services[1]
        booking = scheduler.create_booking(
            make_request(
                linh.id, full_body.id, "14:00", duration=90,
                additional_service_ids=[hot_stone.id, cupping.id],
            )
        )
        assert booking.service_price == 450000
        assert booking.total_amount == 450000 + 50000 + 30000
        assert booking.deposit_amount == 106000
        assert [line.name for line in booking.additional_services] == ["Đá Nóng", "Giác Hơi"]

    def test_deposit_of_500000_is_100000(self, scheduler, seeded):
        thai = seeded.services[2]
        minh = seeded.technicians[1]
        booking = scheduler.create_booking(make_request(minh.id, thai.id, "09:00", duration=90))
        assert booking.total_amount == 500000
        assert booking.deposit_amount == 100000

    def test_deposit_rounds_half_up(self, store, calendar, notifier, clock):
        scheduler = SpaScheduler(
            store,
            calendar=calendar,
            notifier=notifier,
            config=make_config(deposit_rate=0.25),
            clock=clock,
        )
        tech = scheduler.catalog.add_technician({"name": "Chị Mai"})
        service = scheduler.catalog.add_service({"name": "Foot", "prices": {30: 10, 60: 14}})
        # 10 * 0.25 = 2.5 rounds up to 3, not to the even 2
        assert scheduler.create_booking(
            make_request(tech.id, service.id, "09:00", duration=30)
        ).deposit_amount == 3
        # 14 * 0.25 = 3.5 -> 4
        assert scheduler.create_booking(
            make_request(tech.id, service.id, "10:00", duration=60)
        ).deposit_amount == 4

    def test_quoted_total_must_match(self, scheduler, linh, full_body):
        with pytest.raises(ValidationError, match="does not match"):
            scheduler.create_booking(
                make_request(linh.id, full_body.id, "14:00", total_amount=250000)
            )

    def test_matching_quoted_total_accepted(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(
            make_request(linh.id, full_body.id, "14:00", total_amount=300000)
        )
        assert booking.total_amount == 300000

    def test_qr_payload_carries_code(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        assert booking.qr_payload.startswith(booking.booking_code + "-")

    def test_timestamps_from_clock(self, scheduler, clock, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        assert booking.created_at == clock.now
        assert booking.updated_at == clock.now

    def test_phone_normalized(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(
            make_request(linh.id, full_body.id, customer_phone="+84 901 234 567")
        )
        assert booking.customer_phone == "0901234567"

    def test_notifies_booking_created(self, scheduler, recorder, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        payloads = recorder.of_type(EventType.BOOKING_CREATED)
        assert len(payloads) == 1
        assert payloads[0]["booking_code"] == booking.booking_code
        assert payloads[0]["booking_date"] == "2024-06-01"


class TestBookingCodes:
    def test_code_format(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        assert re.fullmatch(r"MB[2-9A-HJ-NP-Z]{8}", booking.booking_code)

    def test_codes_unique(self, scheduler, seeded, full_body):
        codes = set()
        for technician in seeded.technicians:
            for start in ("09:00", "11:00", "13:00", "15:00", "17:00"):
                codes.add(
                    scheduler.create_booking(
                        make_request(technician.id, full_body.id, start)
                    ).booking_code
                )
        assert len(codes) == 15

    def test_retries_on_collision(self, scheduler, linh, full_body, monkeypatch):
        codes = iter(["MBAAAAAAAA", "MBAAAAAAAA", "MBBBBBBBBB"])
        monkeypatch.setattr(
            "spa_scheduler.scheduling.admission.generate_booking_code",
            lambda prefix, now=None: next(codes),
        )
        first = scheduler.create_booking(make_request(linh.id, full_body.id, "09:00"))
        second = scheduler.create_booking(make_request(linh.id, full_body.id, "11:00"))
        assert first.booking_code == "MBAAAAAAAA"
        assert second.booking_code == "MBBBBBBBBB"

    def test_gives_up_after_configured_attempts(self, scheduler, linh, full_body, monkeypatch):
        monkeypatch.setattr(
            "spa_scheduler.scheduling.admission.generate_booking_code",
            lambda prefix, now=None: "MBAAAAAAAA",
        )
        scheduler.create_booking(make_request(linh.id, full_body.id, "09:00"))
        with pytest.raises(StoreError, match="unique booking code"):
            scheduler.create_booking(make_request(linh.id, full_body.id, "11:00"))
        assert len(scheduler.list_bookings(DAY)) == 1

    def test_store_rejects_duplicate_code(self, scheduler, store, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        with pytest.raises(DuplicateBookingCodeError):
            store.insert_booking(booking.model_copy(update={"id": None, "start_time": "18:00"}))


class TestConflicts:
    def test_same_slot_twice(self, scheduler, linh, full_body):
        scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        with pytest.raises(ConflictError, match="no longer available"):
            scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))

    def test_partial_overlap(self, scheduler, linh, full_body):
        scheduler.create_booking(make_request(linh.id, full_body.id, "14:00", duration=90))
        with pytest.raises(ConflictError):
            scheduler.create_booking(make_request(linh.id, full_body.id, "15:00"))

    def test_adjacent_booking_allowed(self, scheduler, linh, full_body):
        scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        booking = scheduler.create_booking(make_request(linh.id, full_body.id, "15:00"))
        assert booking.start_time == "15:00"

    def test_other_technician_unaffected(self, scheduler, linh, minh, full_body):
        scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        assert scheduler.create_booking(make_request(minh.id, full_body.id, "14:00")).id

    def test_blocked_interval(self, scheduler, linh, full_body):
        scheduler.block_time(linh.id, DAY, "13:00", "16:00", "Day off")
        with pytest.raises(ConflictError):
            scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))

    def test_inactive_technician(self, scheduler, linh, full_body):
        scheduler.catalog.deactivate_technician(linh.id)
        with pytest.raises(ConflictError, match="not taking bookings"):
            scheduler.create_booking(make_request(linh.id, full_body.id))

    def test_cancelled_booking_releases_slot(self, scheduler, linh, full_body):
        first = scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        scheduler.cancel_booking(first.id)
        again = scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        assert again.id != first.id

    def test_no_two_active_bookings_overlap(self, scheduler, seeded, full_body):
        starts = ["09:00", "09:30", "10:00", "10:30", "11:00", "12:00", "12:30", "14:00"]
        for technician in seeded.technicians:
            for start in starts:
                try:
                    scheduler.create_booking(
                        make_request(technician.id, full_body.id, start, duration=90)
                    )
                except ConflictError:
                    pass
        for technician in seeded.technicians:
            rows = scheduler.store.list_bookings_for_technician(technician.id, DAY)
            for i, a in enumerate(rows):
                for b in rows[i + 1:]:
                    assert a.end_time <= b.start_time or b.end_time <= a.start_time


class TestRequestValidation:
    def test_unknown_technician(self, scheduler, full_body):
        with pytest.raises(NotFoundError, match="Technician"):
            scheduler.create_booking(make_request(999, full_body.id))

    def test_unknown_service(self, scheduler, linh):
        with pytest.raises(NotFoundError, match="Service"):
            scheduler.create_booking(make_request(linh.id, 999))

    def test_unknown_additional_service(self, scheduler, linh, full_body):
        with pytest.raises(NotFoundError, match="AdditionalService"):
            scheduler.create_booking(
                make_request(linh.id, full_body.id, additional_service_ids=[999])
            )

    def test_duration_not_offered(self, scheduler, linh, full_body):
        with pytest.raises(ValidationError, match="not offered for 45 minutes"):
            scheduler.create_booking(make_request(linh.id, full_body.id, duration=45))

    def test_inactive_service(self, scheduler, linh, full_body):
        scheduler.catalog.deactivate_service(full_body.id)
        with pytest.raises(ValidationError, match="no longer offered"):
            scheduler.create_booking(make_request(linh.id, full_body.id))

    def test_inactive_additional_service(self, scheduler, linh, full_body, seeded):
        addon = seeded.additional_services[0]
        scheduler.catalog.deactivate_additional_service(addon.id)
        with pytest.raises(ValidationError, match="no longer offered"):
            scheduler.create_booking(
                make_request(linh.id, full_body.id, additional_service_ids=[addon.id])
            )

    def test_start_off_grid(self, scheduler, linh, full_body):
        with pytest.raises(ValidationError, match="not a bookable slot"):
            scheduler.create_booking(make_request(linh.id, full_body.id, "14:15"))

    def test_start_before_opening(self, scheduler, linh, full_body):
        with pytest.raises(ValidationError, match="not a bookable slot"):
            scheduler.create_booking(make_request(linh.id, full_body.id, "08:00"))

    def test_malformed_time(self, scheduler, linh, full_body):
        with pytest.raises(ValidationError, match="start_time"):
            scheduler.create_booking(make_request(linh.id, full_body.id, "2pm"))

    def test_short_name(self, scheduler, linh, full_body):
        with pytest.raises(ValidationError) as exc_info:
            scheduler.create_booking(make_request(linh.id, full_body.id, customer_name=" A "))
        assert exc_info.value.errors[0]["loc"] == ("customer_name",)

    def test_bad_phone(self, scheduler, linh, full_body):
        with pytest.raises(ValidationError, match="customer_phone"):
            scheduler.create_booking(make_request(linh.id, full_body.id, customer_phone="12"))

    def test_duplicate_addons(self, scheduler, linh, full_body, seeded):
        addon = seeded.additional_services[0]
        with pytest.raises(ValidationError, match="additional_service_ids"):
            scheduler.create_booking(
                make_request(linh.id, full_body.id, additional_service_ids=[addon.id, addon.id])
            )

    def test_missing_field(self, scheduler, linh, full_body):
        request = make_request(linh.id, full_body.id)
        del request["booking_date"]
        with pytest.raises(ValidationError, match="booking_date"):
            scheduler.create_booking(request)

    def test_interval_past_midnight(self, store, notifier, clock):
        scheduler = SpaScheduler(
            store,
            calendar=OperatingCalendar("09:00", "23:30", 30),
            notifier=notifier,
            config=make_config(),
            clock=clock,
        )
        tech = scheduler.catalog.add_technician({"name": "Chị Mai"})
        service = scheduler.catalog.add_service({"name": "Late", "prices": {60: 100000}})
        with pytest.raises(DayRolloverError):
            scheduler.create_booking(make_request(tech.id, service.id, "23:30"))

    def test_nothing_written_on_failure(self, scheduler, linh, full_body, recorder):
        with pytest.raises(ValidationError):
            scheduler.create_booking(make_request(linh.id, full_body.id, "14:15"))
        assert scheduler.list_bookings() == []
        assert recorder.of_type(EventType.BOOKING_CREATED) == []


class TestSnapshots:
    def test_repricing_keeps_booked_price(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.catalog.update_service_prices(full_body.id, {60: 999000, 90: 1200000})
        stored = scheduler.get_booking(booking.id)
        assert stored.service_price == 300000
        assert stored.total_amount == 300000

    def test_deactivated_technician_name_kept(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.catalog.deactivate_technician(linh.id)
        assert scheduler.get_booking(booking.id).technician_name == "Chị Linh"

    def test_addon_line_kept_after_deactivation(self, scheduler, linh, full_body, seeded):
        addon = seeded.additional_services[2]
        booking = scheduler.create_booking(
            make_request(linh.id, full_body.id, additional_service_ids=[addon.id])
        )
        scheduler.catalog.deactivate_additional_service(addon.id)
        lines = scheduler.get_booking(booking.id).additional_services
        assert [(line.name, line.price) for line in lines] == [("Ấn Huyệt", 40000)]


class TestVerifyPayment:
    def test_confirms_pending_booking(self, scheduler, recorder, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        confirmed = scheduler.verify_payment(booking.id)
        assert confirmed.status == BookingStatus.CONFIRMED
        assert confirmed.is_paid is True
        assert confirmed.payment_method == "bank_transfer"
        assert recorder.of_type(EventType.PAYMENT_VERIFIED)[0]["status"] == "confirmed"

    def test_custom_payment_method(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        assert scheduler.verify_payment(booking.id, "momo").payment_method == "momo"

    def test_declined_payment_leaves_pending(self, store, calendar, notifier, clock, seeded):
        declining = SpaScheduler(
            store,
            calendar=calendar,
            notifier=notifier,
            payment_verifier=StaticPaymentVerifier(result=False),
            config=make_config(),
            clock=clock,
        )
        tech, service = seeded.technicians[0], seeded.services[0]
        booking = declining.create_booking(make_request(tech.id, service.id))
        with pytest.raises(PaymentDeclinedError):
            declining.verify_payment(booking.id)
        stored = declining.get_booking(booking.id)
        assert stored.status == BookingStatus.PENDING
        assert stored.is_paid is False

    def test_cannot_pay_twice(self, scheduler, verifier, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.verify_payment(booking.id)
        with pytest.raises(InvalidStateError, match="only pending"):
            scheduler.verify_payment(booking.id)
        assert verifier.calls == [booking.booking_code]

    def test_cannot_pay_cancelled(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.cancel_booking(booking.id)
        with pytest.raises(InvalidStateError):
            scheduler.verify_payment(booking.id)

    def test_unknown_booking(self, scheduler, seeded):
        with pytest.raises(NotFoundError, match="Booking"):
            scheduler.verify_payment(12345)

    def test_confirmed_booking_still_holds_slot(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        scheduler.verify_payment(booking.id)
        with pytest.raises(ConflictError):
            scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))


    def test_no_verifier_declines(self, store, calendar, notifier, clock, seeded):
        unconfigured = SpaScheduler(
            store, calendar=calendar, notifier=notifier, config=make_config(), clock=clock
        )
        tech, service = seeded.technicians[0], seeded.services[0]
        booking = unconfigured.create_booking(make_request(tech.id, service.id))
        with pytest.raises(PaymentDeclinedError):
            unconfigured.verify_payment(booking.id)
        assert unconfigured.get_booking(booking.id).status == BookingStatus.PENDING


class TestConfirmBooking:
    def test_admin_confirms_pending(self, scheduler, recorder, verifier, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        confirmed = scheduler.confirm_booking(booking.id, "cash")
        assert confirmed.status == BookingStatus.CONFIRMED
        assert confirmed.is_paid is True
        assert confirmed.payment_method == "cash"
        assert verifier.calls == []
        (payload,) = recorder.of_type(EventType.BOOKING_CONFIRMED)
        assert payload["booking_code"] == booking.booking_code

    def test_default_payment_method(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        assert scheduler.confirm_booking(booking.id).payment_method == "bank_transfer"

    def test_works_without_verifier(self, store, calendar, notifier, clock, seeded):
        unconfigured = SpaScheduler(
            store, calendar=calendar, notifier=notifier, config=make_config(), clock=clock
        )
        tech, service = seeded.technicians[0], seeded.services[0]
        booking = unconfigured.create_booking(make_request(tech.id, service.id))
        assert unconfigured.confirm_booking(booking.id).status == BookingStatus.CONFIRMED

    def test_cannot_confirm_cancelled(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.cancel_booking(booking.id)
        with pytest.raises(InvalidStateError):
            scheduler.confirm_booking(booking.id)

    def test_confirmed_is_not_expired(self, scheduler, clock, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.confirm_booking(booking.id)
        assert scheduler.expire_stale_pending_bookings(clock.advance(60)) == []

    def test_unknown_booking(self, scheduler, seeded):
        with pytest.raises(NotFoundError, match="Booking"):
            scheduler.confirm_booking(12345)


class TestCancelBooking:
    def test_cancel_pending(self, scheduler, recorder, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        cancelled = scheduler.cancel_booking(booking.id)
        assert cancelled.status == BookingStatus.CANCELLED
        assert len(recorder.of_type(EventType.BOOKING_CANCELLED)) == 1

    def test_cancel_reason_in_event(self, scheduler, recorder, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.cancel_booking(booking.id, reason="Khách đổi lịch")
        (payload,) = recorder.of_type(EventType.BOOKING_CANCELLED)
        assert payload["reason"] == "Khách đổi lịch"
        assert payload["status"] == "cancelled"

    def test_cannot_cancel_confirmed(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.verify_payment(booking.id)
        with pytest.raises(InvalidStateError, match="Valid triggers: \\[\\]"):
            scheduler.cancel_booking(booking.id)

    def test_cannot_cancel_twice(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.cancel_booking(booking.id)
        with pytest.raises(InvalidStateError):
            scheduler.cancel_booking(booking.id)

    def test_unknown_booking(self, scheduler, seeded):
        with pytest.raises(NotFoundError):
            scheduler.cancel_booking(12345)


class TestExpireStalePendingBookings:
    def test_expires_after_hold_window(self, scheduler, clock, recorder, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        assert scheduler.expire_stale_pending_bookings(clock.advance(9)) == []

        expired = scheduler.expire_stale_pending_bookings(clock.advance(2))
        assert [b.id for b in expired] == [booking.id]
        assert scheduler.get_booking(booking.id).status == BookingStatus.CANCELLED
        assert len(recorder.of_type(EventType.BOOKING_EXPIRED)) == 1

    def test_expired_slot_is_bookable_again(self, scheduler, clock, linh, full_body):
        scheduler.create_booking(make_request(linh.id, full_body.id, "14:00"))
        scheduler.expire_stale_pending_bookings(clock.advance(15))
        assert scheduler.create_booking(make_request(linh.id, full_body.id, "14:00")).id

    def test_confirmed_bookings_untouched(self, scheduler, clock, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        scheduler.verify_payment(booking.id)
        assert scheduler.expire_stale_pending_bookings(clock.advance(60)) == []
        assert scheduler.get_booking(booking.id).status == BookingStatus.CONFIRMED

    def test_uses_clock_when_now_omitted(self, scheduler, clock, linh, full_body):
        scheduler.create_booking(make_request(linh.id, full_body.id))
        clock.advance(30)
        assert len(scheduler.expire_stale_pending_bookings()) == 1

    def test_naive_now_is_treated_as_utc(self, scheduler, clock, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        naive = (clock.now + timedelta(minutes=5)).replace(tzinfo=None)
        assert scheduler.expire_stale_pending_bookings(naive) == []

        naive = (clock.now + timedelta(minutes=11)).replace(tzinfo=None)
        expired = scheduler.expire_stale_pending_bookings(naive)
        assert [b.id for b in expired] == [booking.id]


class TestLookup:
    def test_lookup_by_code(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        assert scheduler.lookup_booking_by_code(booking.booking_code).id == booking.id

    def test_lookup_is_forgiving(self, scheduler, linh, full_body):
        booking = scheduler.create_booking(make_request(linh.id, full_body.id))
        code = booking.booking_code
        messy = f" {code[:5].lower()}-{code[5:]} "
        assert scheduler.lookup_booking_by_code(messy).id == booking.id

    def test_unknown_code(self, scheduler, seeded):
        with pytest.raises(NotFoundError, match="MBNOPE"):
            scheduler.lookup_booking_by_code("mbnope")

    def test_list_bookings_includes_cancelled(self, scheduler, linh, full_body):
        first = scheduler.create_booking(make_request(linh.id, full_body.id, "09:00"))
        scheduler.create_booking(make_request(linh.id, full_body.id, "11:00"))
        scheduler.cancel_booking(first.id)
        statuses = [b.status for b in scheduler.list_bookings(DAY)]
        assert statuses == [BookingStatus.CANCELLED, BookingStatus.PENDING]
