"""
Uninstallation Engine

Finds everything a module stamped into a company's schema (by provenance) and
either reports the impact or removes it in one transaction.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from crm_backend.database import transaction
from crm_backend.models import TemplateModule
from crm_backend.repositories.schema import LiveSchemaRepository

logger = logging.getLogger(__name__)


class UninstallStatus(str, Enum):
    """What an uninstall request ended up doing."""
    REPORTED = "reported"  # live data found, nothing deleted
    REMOVED = "removed"


@dataclass
class UninstallOutcome:
    status: UninstallStatus
    message: str
    deleted_count: int = 0
    removed_object_types: int = 0
    removed_association_types: int = 0


@dataclass
class UninstallImpact:
    """Live entities stamped from one module, plus the data they hold."""
    object_type_ids: list[str] = field(default_factory=list)
    association_type_ids: list[str] = field(default_factory=list)
    object_count: int = 0


class UninstallEngine:
    """Measures and executes the removal of one installed module."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.schema = LiveSchemaRepository(session)

    async def assess(self, company_id: str, module: TemplateModule) -> UninstallImpact:
        """Collect affected object types, association types and the data row count."""
        blueprint_object_ids = [item.id for item in module.blueprint_objects or []]
        blueprint_association_ids = [item.id for item in module.blueprint_associations or []]

        object_type_ids = await self.schema.find_object_type_ids_by_origin(
            company_id, blueprint_object_ids
        )
        # An association type cannot outlive either endpoint
        association_type_ids = await self.schema.find_association_type_ids(
            company_id, blueprint_association_ids, object_type_ids
        )
        object_count = await self.schema.count_objects(company_id, object_type_ids)

        return UninstallImpact(
            object_type_ids=object_type_ids,
            association_type_ids=association_type_ids,
            object_count=object_count,
        )

    async def uninstall(
        self,
        company_id: str,
        module: TemplateModule,
        force: bool = False,
    ) -> UninstallOutcome:
        impact = await self.assess(company_id, module)

        if impact.object_count > 0 and not force:
            logger.warning(
                f"Uninstall of module '{module.slug}' for company {company_id} "
                f"needs confirmation: {impact.object_count} CRM objects would be deleted"
            )
            return UninstallOutcome(
                status=UninstallStatus.REPORTED,
                message=(
                    f"Module '{module.slug}' has {impact.object_count} CRM objects. "
                    "Confirm uninstall to proceed."
                ),
                deleted_count=impact.object_count,
            )

        async with transaction(self.session):
            deleted_count = await self._remove(company_id, module, impact)

        logger.info(
            f"Uninstalled module '{module.slug}' for company {company_id}: "
            f"{deleted_count} CRM objects, {len(impact.object_type_ids)} object types, "
            f"{len(impact.association_type_ids)} association types removed"
        )

        return UninstallOutcome(
            status=UninstallStatus.REMOVED,
            message=f"Module '{module.slug}' uninstalled successfully.",
            deleted_count=deleted_count,
            removed_object_types=len(impact.object_type_ids),
            removed_association_types=len(impact.association_type_ids),
        )

    async def _remove(self, company_id: str, module: TemplateModule, impact: UninstallImpact) -> int:
        """Delete dependents before the rows they reference. Returns deleted object count."""
        object_ids = await self.schema.find_object_ids(company_id, impact.object_type_ids)

        await self.schema.delete_object_associations(
            company_id, impact.association_type_ids, object_ids
        )
        deleted_count = await self.schema.delete_objects(company_id, impact.object_type_ids)
        await self.schema.delete_fields(company_id, impact.object_type_ids)
        await self.schema.delete_association_types(company_id, impact.association_type_ids)
        await self.schema.delete_object_types(company_id, impact.object_type_ids)
        await self.schema.delete_installed_module(company_id, module.id)

        return deleted_count
