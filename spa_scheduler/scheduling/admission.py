"""
Booking admission: validate, price, and commit bookings.

The availability a customer saw a minute ago is only a hint. The slot is
re-checked under the store's reservation lock immediately before insert,
so of two customers racing for the same technician and interval exactly
one gets the booking and the other gets a ConflictError.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from spa_scheduler.config import BookingConfig, settings
from spa_scheduler.errors import (
    ConflictError,
    DuplicateBookingCodeError,
    InvalidStateError,
    NotFoundError,
    PaymentDeclinedError,
    StoreError,
    ValidationError,
)
from spa_scheduler.logging_context import get_request_logger
from spa_scheduler.notifications import EventType, NotificationBus
from spa_scheduler.payments import PaymentVerifier, UnconfiguredPaymentVerifier
from spa_scheduler.scheduling.availability import AvailabilityEngine
from spa_scheduler.scheduling.booking_state import BookingTrigger, next_status
from spa_scheduler.schemas.booking_schema import (
    AdditionalServiceLine,
    Booking,
    BookingRequest,
    BookingStatus,
)
from spa_scheduler.schemas.catalog_schema import Service, Technician
from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.time_utils import add_minutes
from spa_scheduler.utils import (
    as_utc,
    generate_booking_code,
    normalize_booking_code,
    round_half_up,
    utcnow,
)

logger = get_request_logger(__name__)

Clock = Callable[[], datetime]


def build_qr_payload(booking_code: str, created_at: datetime) -> str:
    """Text encoded into the QR code shown with the payment instructions."""
    return f"{booking_code}-{int(created_at.timestamp() * 1000)}"


def booking_event_payload(booking: Booking) -> dict[str, Any]:
    return booking.model_dump(mode="json")


class BookingService:
    """Sole writer of booking rows."""

    def __init__(
        self,
        store: SchedulerStore,
        engine: AvailabilityEngine,
        notifier: Optional[NotificationBus] = None,
        payment_verifier: Optional[PaymentVerifier] = None,
        config: Optional[BookingConfig] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.engine = engine
        self.notifier = notifier or NotificationBus()
        self.payment_verifier = payment_verifier or UnconfiguredPaymentVerifier()
        self.config = config or settings.booking
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    def create_booking(self, request: Union[BookingRequest, dict[str, Any]]) -> Booking:
        """
        Validate a request and reserve the slot.

        Raises:
            ValidationError: Malformed request, unknown duration tier, start off
                the calendar grid, price mismatch, or an interval past midnight.
            NotFoundError: Unknown technician, service, or additional service.
            ConflictError: The technician is inactive or no longer free.
        """
        req = self._parse_request(request)
        service = self._require_bookable_service(req.service_id, req.duration)
        addons = self._resolve_addons(req.additional_service_ids)
        technician = self._require_technician(req.technician_id)
        if not technician.is_active:
            raise ConflictError(f"Technician {technician.name} is not taking bookings")

        if not self.engine.calendar.is_slot(req.start_time):
            raise ValidationError(
                f"Start time {req.start_time} is not a bookable slot "
                f"({self.engine.calendar.open_time}-{self.engine.calendar.last_start} "
                f"every {self.engine.calendar.granularity_minutes} min)"
            )
        end_time = add_minutes(req.start_time, req.duration)

        service_price = service.prices[req.duration]
        total = service_price + sum(line.price for line in addons)
        if req.total_amount is not None and req.total_amount != total:
            raise ValidationError(
                f"Quoted total {req.total_amount} does not match current price {total}"
            )
        deposit = round_half_up(total * self.config.deposit_rate)

        draft = Booking(
            booking_code="",
            customer_name=req.customer_name,
            customer_phone=req.customer_phone,
            customer_notes=req.customer_notes,
            technician_id=technician.id,
            technician_name=technician.name,
            service_id=service.id,
            service_name=service.name,
            service_price=service_price,
            duration=req.duration,
            additional_services=addons,
            booking_date=req.booking_date,
            start_time=req.start_time,
            end_time=end_time,
            total_amount=total,
            deposit_amount=deposit,
            is_paid=False,
            status=BookingStatus.PENDING,
        )

        with self.store.reservation_lock(technician.id, req.booking_date):
            if not self.engine.is_technician_free(
                technician.id, req.booking_date, req.start_time, end_time
            ):
                logger.info(
                    "Slot taken: technician %s on %s %s-%s",
                    technician.id, req.booking_date, req.start_time, end_time,
                )
                raise ConflictError(
                    f"{technician.name} is no longer available on {req.booking_date} "
                    f"from {req.start_time} to {end_time}"
                )
            booking = self._insert_with_unique_code(draft)

        logger.info(
            "Booking created: %s for %s with %s on %s at %s-%s (total %d, deposit %d)",
            booking.booking_code, booking.customer_name, booking.technician_name,
            booking.booking_date, booking.start_time, booking.end_time,
            booking.total_amount, booking.deposit_amount,
        )
        self.notifier.notify(EventType.BOOKING_CREATED, booking_event_payload(booking))
        return booking

    def _insert_with_unique_code(self, draft: Booking) -> Booking:
        for attempt in range(1, self.config.code_attempts + 1):
            created_at = self._clock()
            code = generate_booking_code(self.config.code_prefix, now=created_at.timestamp())
            candidate = draft.model_copy(
                update={
                    "booking_code": code,
                    "qr_payload": build_qr_payload(code, created_at),
                    "created_at": created_at,
                    "updated_at": created_at,
                }
            )
            try:
                return self.store.insert_booking(candidate)
            except DuplicateBookingCodeError:
                logger.warning("Booking code collision on %s (attempt %d)", code, attempt)
        raise StoreError(
            f"Could not allocate a unique booking code after {self.config.code_attempts} attempts"
        )

    def _parse_request(self, request: Union[BookingRequest, dict[str, Any]]) -> BookingRequest:
        if isinstance(request, BookingRequest):
            return request
        try:
            return BookingRequest.model_validate(request)
        except PydanticValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
            raise ValidationError(
                f"Invalid booking request: {fields}",
                errors=exc.errors(include_url=False),
            ) from exc

    def _require_technician(self, technician_id: int) -> Technician:
        technician = self.store.get_technician(technician_id)
        if technician is None:
            raise NotFoundError("Technician", technician_id)
        return technician

    def _require_bookable_service(self, service_id: int, duration: int) -> Service:
        service = self.store.get_service(service_id)
        if service is None:
            raise NotFoundError("Service", service_id)
        if not service.is_active:
            raise ValidationError(f"Service {service.name} is no longer offered")
        if service.price_for(duration) is None:
            raise ValidationError(
                f"Service {service.name} is not offered for {duration} minutes "
                f"(available: {service.durations})"
            )
        return service

    def _resolve_addons(self, addon_ids: list[int]) -> list[AdditionalServiceLine]:
        lines = []
        for addon_id in addon_ids:
            addon = self.store.get_additional_service(addon_id)
            if addon is None:
                raise NotFoundError("AdditionalService", addon_id)
            if not addon.is_active:
                raise ValidationError(f"Additional service {addon.name} is no longer offered")
            lines.append(AdditionalServiceLine(id=addon.id, name=addon.name, price=addon.price))
        return lines

    # ------------------------------------------------------------------ #
    # Status transitions
    # ------------------------------------------------------------------ #

    def _require_booking(self, booking_id: int) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def _transition(
        self,
        booking_id: int,
        trigger: BookingTrigger,
        fields: Optional[dict[str, Any]] = None,
    ) -> Booking:
        """Apply a transition under the booking's reservation lock."""
        booking = self._require_booking(booking_id)
        with self.store.reservation_lock(booking.technician_id, booking.booking_date):
            current = self._require_booking(booking_id)
            status = next_status(current.status, trigger)
            updated = self.store.update_booking_status(
                booking_id, status, {**(fields or {}), "updated_at": self._clock()}
            )
        logger.info(
            "Booking %s: %s -> %s (%s)",
            updated.booking_code, current.status.value, updated.status.value, trigger.value,
        )
        return updated

    def verify_payment(self, booking_id: int, payment_method: Optional[str] = None) -> Booking:
        """
        Confirm a pending booking once the deposit is verified.

        The verifier is consulted outside the lock; the status is re-checked
        under the lock before it changes.

        Raises:
            NotFoundError: Unknown booking.
            InvalidStateError: The booking is not pending.
            PaymentDeclinedError: The verifier said no; the booking stays pending.
        """
        booking = self._require_booking(booking_id)
        if booking.status != BookingStatus.PENDING:
            raise InvalidStateError(
                f"Booking {booking.booking_code} is {booking.status.value}; "
                "only pending bookings can be paid"
            )
        if not self.payment_verifier.verify(booking):
            logger.info("Payment not verified for %s", booking.booking_code)
            raise PaymentDeclinedError(
                f"Payment for booking {booking.booking_code} could not be verified"
            )
        confirmed = self._transition(
            booking_id,
            BookingTrigger.PAYMENT_VERIFIED,
            {
                "is_paid": True,
                "payment_method": payment_method or self.config.default_payment_method,
            },
        )
        self.notifier.notify(EventType.PAYMENT_VERIFIED, booking_event_payload(confirmed))
        return confirmed

    def confirm_booking(self, booking_id: int, payment_method: Optional[str] = None) -> Booking:
        """Confirm a pending booking whose deposit an admin checked by hand.

        The payment verifier is not consulted.

        Raises:
            NotFoundError: Unknown booking.
            InvalidStateError: The booking is not pending.
        """
        confirmed = self._transition(
            booking_id,
            BookingTrigger.ADMIN_CONFIRMED,
            {
                "is_paid": True,
                "payment_method": payment_method or self.config.default_payment_method,
            },
        )
        self.notifier.notify(EventType.BOOKING_CONFIRMED, booking_event_payload(confirmed))
        return confirmed

    def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        """Cancel a pending booking (admin action)."""
        cancelled = self._transition(booking_id, BookingTrigger.CANCELLED)
        if reason:
            logger.info("Booking %s cancelled: %s", cancelled.booking_code, reason)
        self.notifier.notify(
            EventType.BOOKING_CANCELLED, {**booking_event_payload(cancelled), "reason": reason}
        )
        return cancelled

    def expire_stale_pending_bookings(self, now: Optional[datetime] = None) -> list[Booking]:
        """
        Cancel bookings left pending longer than the hold window.

        Meant to be called periodically by whoever owns a scheduler; the core
        has no timer of its own. Bookings confirmed or cancelled between the
        scan and the lock are skipped.
        """
        now = as_utc(now) if now is not None else self._clock()
        cutoff = now - timedelta(minutes=self.config.pending_expiry_minutes)
        expired: list[Booking] = []
        for stale in self.store.list_pending_bookings_created_before(cutoff):
            try:
                booking = self._transition(stale.id, BookingTrigger.EXPIRED)
            except InvalidStateError:
                logger.debug("Booking %s changed status before expiry", stale.booking_code)
                continue
            expired.append(booking)
            self.notifier.notify(EventType.BOOKING_EXPIRED, booking_event_payload(booking))
        if expired:
            logger.info("Expired %d stale pending booking(s)", len(expired))
        return expired

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: int) -> Booking:
        return self._require_booking(booking_id)

    def lookup_booking_by_code(self, code: str) -> Booking:
        normalized = normalize_booking_code(code)
        booking = self.store.get_booking_by_code(normalized)
        if booking is None:
            raise NotFoundError("Booking", normalized)
        return booking

    def list_bookings(self, day=None) -> list[Booking]:
        return self.store.list_bookings(day)
