"""
Installation Ledger - Per-company template and module installation records

The pre-checks here are a fast path for friendly errors. The unique
constraints on company_templates.company_id and
company_installed_modules(company_id, module_id) are what actually prevent
double installs under concurrency.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, joinedload

from crm_backend.models import (
    CompanyInstalledModule,
    CompanyTemplate,
    TemplateModule,
)


class CompanyTemplateRepository:
    """Which template (if any) a company has installed."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_company_id(self, company_id: str) -> CompanyTemplate | None:
        result = await self.session.execute(
            select(CompanyTemplate)
            .where(CompanyTemplate.company_id == company_id)
            .options(joinedload(CompanyTemplate.template))
        )
        return result.scalar_one_or_none()

    async def has_template(self, company_id: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(CompanyTemplate)
            .where(CompanyTemplate.company_id == company_id)
        )
        return result.scalar_one() > 0


class CompanyInstalledModuleRepository:
    """The set of modules a company currently has."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_company_id(self, company_id: str) -> list[CompanyInstalledModule]:
        """Installed modules for a company, ordered by module display order then name."""
        result = await self.session.execute(
            select(CompanyInstalledModule)
            .join(CompanyInstalledModule.module)
            .where(CompanyInstalledModule.company_id == company_id)
            .options(contains_eager(CompanyInstalledModule.module))
            .order_by(TemplateModule.display_order, TemplateModule.name)
        )
        return list(result.scalars().all())

    async def find_modules_by_company_id(self, company_id: str) -> list[TemplateModule]:
        installed = await self.find_by_company_id(company_id)
        return [row.module for row in installed if row.module is not None]

    async def is_module_installed(self, company_id: str, module_id: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(CompanyInstalledModule)
            .where(
                CompanyInstalledModule.company_id == company_id,
                CompanyInstalledModule.module_id == module_id,
            )
        )
        return result.scalar_one() > 0

    async def get_installed_module_slugs(self, company_id: str) -> list[str]:
        result = await self.session.execute(
            select(TemplateModule.slug)
            .join(CompanyInstalledModule, CompanyInstalledModule.module_id == TemplateModule.id)
            .where(CompanyInstalledModule.company_id == company_id)
            .order_by(TemplateModule.display_order, TemplateModule.name)
        )
        return [slug for slug in result.scalars().all() if slug]
