"""
Stamping Engine

Copies module blueprints into a company's live schema. Every created row keeps
the id of the blueprint it came from in template_origin_id so it can be found
again on uninstall.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from crm_backend.installation.errors import BadRequestError, TemplateErrorCode
from crm_backend.models import (
    AssociationType,
    BlueprintAssociation,
    BlueprintObject,
    CompanyInstalledModule,
    ObjectField,
    ObjectType,
    TemplateModule,
)
from crm_backend.repositories.schema import LiveSchemaRepository

logger = logging.getLogger(__name__)


def _enum_value(value) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


def _by_display_order(item) -> tuple[int, str]:
    return (item.display_order or 0, item.name or "")


@dataclass
class StampCounts:
    """How many live schema rows an install created."""
    created_object_types: int = 0
    created_fields: int = 0
    created_associations: int = 0

    def add(self, other: "StampCounts") -> None:
        self.created_object_types += other.created_object_types
        self.created_fields += other.created_fields
        self.created_associations += other.created_associations


class StampingEngine:
    """
    Creates object types, fields and association types from blueprints.

    Runs inside the caller's transaction and only flushes; any exception
    raised here must abort that transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.schema = LiveSchemaRepository(session)

    async def install_modules(
        self,
        company_id: str,
        modules: Sequence[TemplateModule],
        object_type_ids: dict[str, str],
        installed_by: str | None = None,
    ) -> StampCounts:
        """
        Stamp modules in the given order.

        `object_type_ids` maps object api_name to live object type id. It is
        shared across all modules so a later module's associations can point
        at objects created by an earlier one, and it is updated in place.
        """
        totals = StampCounts()

        for module in modules:
            counts = await self._install_module(company_id, module, object_type_ids, installed_by)
            totals.add(counts)
            logger.debug(
                f"Stamped module '{module.slug}' for company {company_id}: "
                f"{counts.created_object_types} object types, "
                f"{counts.created_fields} fields, "
                f"{counts.created_associations} associations"
            )

        return totals

    async def _install_module(
        self,
        company_id: str,
        module: TemplateModule,
        object_type_ids: dict[str, str],
        installed_by: str | None,
    ) -> StampCounts:
        counts = StampCounts()

        for blueprint_object in sorted(module.blueprint_objects or [], key=_by_display_order):
            object_type = await self._create_object_type(company_id, blueprint_object)
            object_type_ids[object_type.api_name] = object_type.id
            counts.created_object_types += 1
            counts.created_fields += await self._create_fields(company_id, object_type, blueprint_object)

        associations = [
            self._build_association_type(company_id, association, object_type_ids)
            for association in sorted(module.blueprint_associations or [], key=_by_display_order)
        ]
        if associations:
            counts.created_associations = await self.schema.add_association_types(associations)

        await self.schema.add_installed_module(
            CompanyInstalledModule(
                company_id=company_id,
                module_id=module.id,
                installed_by=installed_by,
            )
        )

        return counts

    async def _create_object_type(self, company_id: str, blueprint: BlueprintObject) -> ObjectType:
        return await self.schema.add_object_type(
            ObjectType(
                company_id=company_id,
                name=blueprint.name,
                api_name=blueprint.api_name,
                description=blueprint.description,
                template_origin_id=blueprint.id,
                protection=_enum_value(blueprint.protection),
            )
        )

    async def _create_fields(
        self,
        company_id: str,
        object_type: ObjectType,
        blueprint: BlueprintObject,
    ) -> int:
        fields = [
            ObjectField(
                company_id=company_id,
                object_type_id=object_type.id,
                name=blueprint_field.name,
                api_name=blueprint_field.api_name,
                description=blueprint_field.description,
                field_type=_enum_value(blueprint_field.field_type),
                is_required=bool(blueprint_field.is_required),
                shape=blueprint_field.shape,
                config_shape=blueprint_field.config_shape,
                template_origin_id=blueprint_field.id,
                protection=_enum_value(blueprint_field.protection),
            )
            for blueprint_field in sorted(blueprint.fields or [], key=_by_display_order)
        ]
        if not fields:
            return 0
        return await self.schema.add_fields(fields)

    def _build_association_type(
        self,
        company_id: str,
        association: BlueprintAssociation,
        object_type_ids: dict[str, str],
    ) -> AssociationType:
        source_id = object_type_ids.get(association.source_object_api_name)
        target_id = object_type_ids.get(association.target_object_api_name)

        if not source_id or not target_id:
            missing = [
                api_name
                for api_name, resolved in (
                    (association.source_object_api_name, source_id),
                    (association.target_object_api_name, target_id),
                )
                if not resolved
            ]
            raise BadRequestError(
                f"Association '{association.api_name}' references missing object types.",
                code=TemplateErrorCode.ASSOCIATION_TARGET_NOT_FOUND,
                detail={"association": association.api_name, "missing_object_api_names": missing},
            )

        return AssociationType(
            company_id=company_id,
            source_object_type_id=source_id,
            target_object_type_id=target_id,
            name=association.name,
            api_name=association.api_name,
            description=association.description,
            source_cardinality=_enum_value(association.source_cardinality),
            target_cardinality=_enum_value(association.target_cardinality),
            is_bidirectional=association.is_bidirectional,
            reverse_name=association.reverse_name,
            template_origin_id=association.id,
            protection=_enum_value(association.protection),
        )
