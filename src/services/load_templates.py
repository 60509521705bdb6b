"""
Load templates
==============

Owners who ship the same cargo over the same route keep it as a named
template: cargo, route and vehicle types.  ``create_load`` turns a template
into a DRAFT load through ``LoadManager.create``; what a template does not
hold (title, pickup date, price) comes from the caller's overrides, with
the title defaulting to ``"<cargo type> Delivery"`` and the pickup date to
now.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.entities import LoadSpec, Place, reject_nulls
from src.domain.enums import VehicleType
from src.domain.errors import NotFound, Unauthorized, ValidationError
from src.infrastructure.models import LoadModel, LoadTemplateModel
from src.infrastructure.repositories import LoadTemplateRepository
from src.services.load_manager import PATCHABLE_FIELDS, REQUIRED_FIELDS, LoadManager
from src.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateSpec:
    name: str
    cargo_type: str
    pickup: Place
    delivery: Place
    vehicle_types: frozenset[VehicleType]
    description: Optional[str] = None
    weight: Optional[float] = None
    volume: Optional[float] = None

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("name is required")
        if not self.cargo_type or not self.cargo_type.strip():
            raise ValidationError("cargo_type is required")
        if self.weight is not None and self.weight <= 0:
            raise ValidationError("weight must be positive")
        if self.volume is not None and self.volume <= 0:
            raise ValidationError("volume must be positive")
        if not self.vehicle_types:
            raise ValidationError("at least one vehicle type is required")
        self.pickup.validate("pickup")
        self.delivery.validate("delivery")


class LoadTemplateManager:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        loads: LoadManager,
    ):
        self.session_factory = session_factory
        self.loads = loads

    async def create(self, owner_id: int, spec: TemplateSpec) -> LoadTemplateModel:
        spec.validate()
        async with unit_of_work(self.session_factory) as session:
            template = await LoadTemplateRepository(session).create(
                LoadTemplateModel(
                    user_id=owner_id,
                    name=spec.name.strip(),
                    description=spec.description,
                    cargo_type=spec.cargo_type.strip(),
                    weight=spec.weight,
                    volume=spec.volume,
                    pickup=dataclasses.asdict(spec.pickup),
                    delivery=dataclasses.asdict(spec.delivery),
                    vehicle_types=sorted(VehicleType(vt).value for vt in spec.vehicle_types),
                )
            )
        logger.info("Load template %s created for user %s", template.id, owner_id)
        return template

    async def list_for_owner(self, owner_id: int) -> list[LoadTemplateModel]:
        async with unit_of_work(self.session_factory) as session:
            return await LoadTemplateRepository(session).get_by_user(owner_id)

    async def delete(self, template_id: int, owner_id: int) -> None:
        async with unit_of_work(self.session_factory) as session:
            repo = LoadTemplateRepository(session)
            template = await self._owned(repo, template_id, owner_id)
            await repo.delete(template)
        logger.info("Load template %s deleted", template_id)

    async def create_load(
        self, template_id: int, owner_id: int, overrides: Optional[dict[str, Any]] = None
    ) -> LoadModel:
        """Draft a load from a template; *overrides* use ``LoadSpec`` field names."""
        overrides = overrides or {}
        unknown = set(overrides) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot set field(s): {', '.join(sorted(unknown))}")
        reject_nulls(overrides, REQUIRED_FIELDS)

        async with unit_of_work(self.session_factory) as session:
            template = await self._owned(
                LoadTemplateRepository(session), template_id, owner_id
            )

        values: dict[str, Any] = {
            "title": f"{template.cargo_type} Delivery",
            "cargo_type": template.cargo_type,
            "weight": template.weight,
            "pickup": Place(**template.pickup),
            "delivery": Place(**template.delivery),
            "pickup_date": self.loads.clock.now(),
            "vehicle_types": frozenset(VehicleType(vt) for vt in template.vehicle_types),
            "description": template.description,
            "volume": template.volume,
        }
        values.update(overrides)
        if values["weight"] is None:
            raise ValidationError("weight is required when the template has none")

        load = await self.loads.create(owner_id, LoadSpec(**values))
        logger.info("Load %s drafted from template %s", load.id, template_id)
        return load

    @staticmethod
    async def _owned(
        repo: LoadTemplateRepository, template_id: int, owner_id: int
    ) -> LoadTemplateModel:
        template = await repo.get_by_id(template_id)
        if template is None:
            raise NotFound("Load template", template_id)
        if template.user_id != owner_id:
            raise Unauthorized("Only the owner can use this template")
        return template
