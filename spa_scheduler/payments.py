"""
Payment verification strategies.

In production this would ask the bank or payment gateway whether the
deposit transfer for a booking has arrived. The core only needs a yes/no.
"""

import logging
import random
from abc import ABC, abstractmethod
from typing import Optional

from spa_scheduler.schemas.booking_schema import Booking

logger = logging.getLogger(__name__)

MOCK_SUCCESS_RATE = 0.9


class PaymentVerifier(ABC):
    @abstractmethod
    def verify(self, booking: Booking) -> bool:
        """Return True iff the deposit for ``booking`` has been received."""
        raise NotImplementedError


class StaticPaymentVerifier(PaymentVerifier):
    """Always answers the same way. Deterministic stand-in for tests."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: list[str] = []

    def verify(self, booking: Booking) -> bool:
        self.calls.append(booking.booking_code)
        return self.result


class MockPaymentVerifier(PaymentVerifier):
    """Randomized gateway mock: succeeds ``success_rate`` of the time."""

    def __init__(self, success_rate: float = MOCK_SUCCESS_RATE, seed: Optional[int] = None) -> None:
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be between 0.0 and 1.0, got {success_rate}")
        self.success_rate = success_rate
        self._random = random.Random(seed)

    def verify(self, booking: Booking) -> bool:
        ok = self._random.random() < self.success_rate
        logger.info(
            "Mock payment check for %s (deposit %d): %s",
            booking.booking_code, booking.deposit_amount, "ok" if ok else "declined",
        )
        return ok


class UnconfiguredPaymentVerifier(PaymentVerifier):
    """Declines everything. Used when no gateway has been wired in.

    Deposits can still be accepted by hand through ``confirm_booking``.
    """

    def verify(self, booking: Booking) -> bool:
        logger.warning(
            "No payment verifier configured; declining automatic check for %s",
            booking.booking_code,
        )
        return False
