"""
Catalog management: technicians, services, and additional services.

Nothing here is ever hard-deleted. Deactivated technicians disappear from
availability and cannot take new bookings, but their past bookings keep
the name captured at booking time. Repricing a service never touches
existing bookings for the same reason.
"""

from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from spa_scheduler.errors import NotFoundError, ValidationError
from spa_scheduler.logging_context import get_request_logger
from spa_scheduler.notifications import EventType, NotificationBus
from spa_scheduler.schemas.catalog_schema import AdditionalService, Service, Technician
from spa_scheduler.store.base import SchedulerStore

logger = get_request_logger(__name__)

_TECHNICIAN_FIELDS = frozenset(Technician.model_fields) - {"id", "created_at"}


def _validated(model_cls, data):
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model_cls.__name__.lower()}: {exc.error_count()} error(s)",
            errors=exc.errors(include_url=False),
        ) from exc


class CatalogManager:
    def __init__(self, store: SchedulerStore, notifier: Optional[NotificationBus] = None) -> None:
        self.store = store
        self.notifier = notifier or NotificationBus()

    # ------------------------------------------------------------------ #
    # Technicians
    # ------------------------------------------------------------------ #

    def add_technician(self, data: Union[Technician, dict[str, Any]]) -> Technician:
        technician = self.store.insert_technician(_validated(Technician, data))
        logger.info("Technician added: %s (id=%s)", technician.name, technician.id)
        self.notifier.notify(EventType.TECHNICIAN_CREATED, technician.model_dump(mode="json"))
        return technician

    def update_technician(self, technician_id: int, **changes: Any) -> Technician:
        """
        Update profile fields of a technician.

        Raises:
            NotFoundError: Unknown technician.
            ValidationError: Unknown field names or invalid values.
        """
        unknown = set(changes) - _TECHNICIAN_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update technician fields: {sorted(unknown)}")
        current = self.get_technician(technician_id)
        merged = _validated(Technician, {**current.model_dump(), **changes})
        technician = self.store.update_technician(merged)
        logger.info("Technician %s updated: %s", technician_id, sorted(changes))
        self.notifier.notify(EventType.TECHNICIAN_UPDATED, technician.model_dump(mode="json"))
        return technician

    def deactivate_technician(self, technician_id: int) -> Technician:
        """Stop offering a technician. Existing bookings are left as they are."""
        return self.update_technician(technician_id, is_active=False)

    def activate_technician(self, technician_id: int) -> Technician:
        return self.update_technician(technician_id, is_active=True)

    def get_technician(self, technician_id: int) -> Technician:
        technician = self.store.get_technician(technician_id)
        if technician is None:
            raise NotFoundError("Technician", technician_id)
        return technician

    def list_technicians(self, include_inactive: bool = False) -> list[Technician]:
        if include_inactive:
            return self.store.list_technicians()
        return self.store.list_active_technicians()

    # ------------------------------------------------------------------ #
    # Services
    # ------------------------------------------------------------------ #

    def add_service(self, data: Union[Service, dict[str, Any]]) -> Service:
        service = self.store.insert_service(_validated(Service, data))
        logger.info("Service added: %s %s", service.name, service.prices)
        return service

    def update_service_prices(self, service_id: int, prices: dict[int, int]) -> Service:
        """Replace the duration tiers of a service. Only future bookings see the new prices."""
        current = self.get_service(service_id)
        service = self.store.update_service(
            _validated(Service, {**current.model_dump(), "prices": prices})
        )
        logger.info("Service %s repriced: %s", service.name, service.prices)
        return service

    def deactivate_service(self, service_id: int) -> Service:
        current = self.get_service(service_id)
        service = self.store.update_service(current.model_copy(update={"is_active": False}))
        logger.info("Service deactivated: %s", service.name)
        return service

    def get_service(self, service_id: int) -> Service:
        service = self.store.get_service(service_id)
        if service is None:
            raise NotFoundError("Service", service_id)
        return service

    def list_services(self, include_inactive: bool = False) -> list[Service]:
        services = self.store.list_services()
        return services if include_inactive else [s for s in services if s.is_active]

    def add_additional_service(
        self, data: Union[AdditionalService, dict[str, Any]]
    ) -> AdditionalService:
        addon = self.store.insert_additional_service(_validated(AdditionalService, data))
        logger.info("Additional service added: %s (%d)", addon.name, addon.price)
        return addon

    def deactivate_additional_service(self, service_id: int) -> AdditionalService:
        current = self.store.get_additional_service(service_id)
        if current is None:
            raise NotFoundError("AdditionalService", service_id)
        addon = self.store.update_additional_service(
            current.model_copy(update={"is_active": False})
        )
        logger.info("Additional service deactivated: %s", addon.name)
        return addon

    def list_additional_services(self, include_inactive: bool = False) -> list[AdditionalService]:
        addons = self.store.list_additional_services()
        return addons if include_inactive else [a for a in addons if a.is_active]
