"""
Starter catalog: three massage services, three add-ons, three technicians.

Used by the console demo and the test suite. A real deployment loads its
catalog through ``CatalogManager`` instead.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from spa_scheduler.scheduling.catalog import CatalogManager
from spa_scheduler.schemas.catalog_schema import AdditionalService, Service, Technician

logger = logging.getLogger(__name__)

SERVICES: list[dict[str, Any]] = [
    {
        "name": "Massage Toàn Body",
        "description": "Massage thư giãn toàn thân với tinh dầu thiên nhiên",
        "prices": {60: 300000, 90: 450000},
    },
    {
        "name": "Massage Cổ-Vai-Gáy",
        "description": "Massage chuyên sâu vùng cổ, vai, gáy giảm mỏi nhức",
        "prices": {60: 250000, 90: 350000},
    },
    {
        "name": "Massage Thái",
        "description": "Massage Thái truyền thống với kỹ thuật kéo giãn",
        "prices": {60: 350000, 90: 500000},
    },
]

ADDITIONAL_SERVICES: list[dict[str, Any]] = [
    {"name": "Đá Nóng", "price": 50000},
    {"name": "Giác Hơi", "price": 30000},
    {"name": "Ấn Huyệt", "price": 40000},
]

TECHNICIANS: list[dict[str, Any]] = [
    {
        "name": "Chị Linh",
        "birth_year": 1990,
        "experience": 5,
        "specialties": ["Massage Thái", "Massage Toàn Body"],
        "rating": 4.9,
        "notes": "Kỹ thuật viên có kinh nghiệm, phục vụ tận tâm",
    },
    {
        "name": "Anh Minh",
        "birth_year": 1985,
        "experience": 7,
        "specialties": ["Massage Cổ-Vai-Gáy", "Ấn Huyệt"],
        "rating": 4.8,
        "notes": "Kỹ thuật mạnh tay, phù hợp với khách nam",
    },
    {
        "name": "Chị Hương",
        "birth_year": 1992,
        "experience": 4,
        "specialties": ["Massage Toàn Body", "Đá Nóng"],
        "rating": 4.9,
        "notes": "Chuyên về massage thư giãn, tay nghề tốt",
    },
]


@dataclass
class SeededCatalog:
    services: list[Service] = field(default_factory=list)
    additional_services: list[AdditionalService] = field(default_factory=list)
    technicians: list[Technician] = field(default_factory=list)


def seed_catalog(catalog: CatalogManager) -> SeededCatalog:
    """Insert the starter catalog. Skipped if any technician already exists."""
    if catalog.list_technicians(include_inactive=True):
        logger.info("Catalog already seeded, skipping")
        return SeededCatalog(
            services=catalog.list_services(include_inactive=True),
            additional_services=catalog.list_additional_services(include_inactive=True),
            technicians=catalog.list_technicians(include_inactive=True),
        )

    seeded = SeededCatalog(
        services=[catalog.add_service(s) for s in SERVICES],
        additional_services=[catalog.add_additional_service(a) for a in ADDITIONAL_SERVICES],
        technicians=[catalog.add_technician(t) for t in TECHNICIANS],
    )
    logger.info(
        "Seeded %d services, %d add-ons, %d technicians",
        len(seeded.services), len(seeded.additional_services), len(seeded.technicians),
    )
    return seeded
