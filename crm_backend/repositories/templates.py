"""
Blueprint Repository - Read access to templates, modules and their blueprints
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crm_backend.installation.errors import NotFoundError, TemplateErrorCode
from crm_backend.models import (
    BlueprintObject,
    CrmTemplate,
    TemplateModule,
)


class TemplateRepository:
    """Queries over the template catalog."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_slug_with_full_tree(self, slug: str) -> CrmTemplate | None:
        """Load a template with every module, object, field and association."""
        query = (
            select(CrmTemplate)
            .where(CrmTemplate.slug == slug)
            .options(
                selectinload(CrmTemplate.modules)
                .selectinload(TemplateModule.blueprint_objects)
                .selectinload(BlueprintObject.fields),
                selectinload(CrmTemplate.modules)
                .selectinload(TemplateModule.blueprint_associations),
            )
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_module_by_slug(self, template_id: str, slug: str) -> TemplateModule | None:
        result = await self.session.execute(
            select(TemplateModule).where(
                TemplateModule.template_id == template_id,
                TemplateModule.slug == slug,
            )
        )
        return result.scalar_one_or_none()

    async def find_module_with_blueprints(self, module_id: str) -> TemplateModule:
        """Load one module with its blueprints, raising if it does not exist."""
        query = (
            select(TemplateModule)
            .where(TemplateModule.id == module_id)
            .options(
                selectinload(TemplateModule.blueprint_objects)
                .selectinload(BlueprintObject.fields),
                selectinload(TemplateModule.blueprint_associations),
            )
        )
        result = await self.session.execute(query)
        module = result.scalar_one_or_none()

        if not module:
            raise NotFoundError(
                f"CRM template module with ID '{module_id}' not found",
                code=TemplateErrorCode.MODULE_NOT_FOUND,
                detail={"module_id": module_id},
            )

        return module
