"""
Template Installation Service

Entry point for installing a CRM template (or single modules of it) into a
company, removing modules again, and inspecting what a company has installed.
Each mutating call runs its writes in exactly one transaction.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_backend.database import transaction
from crm_backend.installation.errors import (
    BadRequestError,
    ConflictError,
    InstallationError,
    NotFoundError,
    TemplateErrorCode,
)
from crm_backend.installation.resolver import (
    collect_required_api_names,
    find_dependents,
    resolve_installation_order,
    validate_against_installed,
)
from crm_backend.installation.stamping import StampingEngine
from crm_backend.installation.uninstall import UninstallEngine, UninstallOutcome
from crm_backend.models import Company, CompanyTemplate, CrmTemplate, TemplateModule
from crm_backend.repositories.installations import (
    CompanyInstalledModuleRepository,
    CompanyTemplateRepository,
)
from crm_backend.repositories.schema import LiveSchemaRepository
from crm_backend.repositories.templates import TemplateRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================

@dataclass
class InstallationResult:
    success: bool
    template_slug: str
    installed_modules: list[str] = field(default_factory=list)
    created_object_types: int = 0
    created_fields: int = 0
    created_associations: int = 0


@dataclass
class CompanyInstallation:
    """Installed template summary (None when nothing is installed) and modules."""
    template: dict[str, Any] | None = None
    modules: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class InstallationPlan:
    """What install_template would create, computed without writing anything."""
    template_slug: str
    modules: list[str] = field(default_factory=list)
    object_api_names: list[str] = field(default_factory=list)
    association_api_names: list[str] = field(default_factory=list)


# =============================================================================
# Constraint violations
# =============================================================================

# Ledger constraints, matched by table name (SQLite) or constraint name (PostgreSQL)
_LEDGER_CONSTRAINTS = {
    "company_templates": TemplateErrorCode.ALREADY_INSTALLED,
    "company_installed_module": TemplateErrorCode.MODULE_ALREADY_INSTALLED,
}


def integrity_error_to_installation_error(
    error: IntegrityError, message: str, detail: dict[str, Any]
) -> InstallationError:
    """
    Map a failed insert to the error the caller should see.

    A ledger unique constraint means a concurrent install won the race and is
    reported with `message`. Any other unique constraint is a live schema api
    name that already exists for the company. Everything else (foreign keys,
    not-null) is an installation failure.
    """
    reason = str(error.orig)
    detail = {**detail, "reason": reason}

    lowered = reason.lower()
    if "unique" not in lowered and "duplicate" not in lowered:
        return InstallationError(
            TemplateErrorCode.INSTALLATION_FAILED.value,
            code=TemplateErrorCode.INSTALLATION_FAILED,
            detail=detail,
        )

    for marker, code in _LEDGER_CONSTRAINTS.items():
        if marker in reason:
            return ConflictError(message, code=code, detail=detail)

    return ConflictError(
        TemplateErrorCode.SCHEMA_API_NAME_TAKEN.value,
        code=TemplateErrorCode.SCHEMA_API_NAME_TAKEN,
        detail=detail,
    )


# =============================================================================
# Service
# =============================================================================

class TemplateInstallationService:
    """Installs, uninstalls and reports on company templates and modules."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.templates = TemplateRepository(session)
        self.company_templates = CompanyTemplateRepository(session)
        self.installed_modules = CompanyInstalledModuleRepository(session)
        self.schema = LiveSchemaRepository(session)

    # -------------------------------------------------------------------------
    # Full template install
    # -------------------------------------------------------------------------

    async def install_template(
        self,
        company_id: str,
        template_slug: str,
        modules: Sequence[str] | None = None,
        install_all_modules: bool = False,
        installed_by: str | None = None,
    ) -> InstallationResult:
        """
        Install a template into a company.

        Core modules are always installed. Selected modules are validated for
        missing dependencies, conflicts, cycles and duplicate object api names
        before anything is written; stamping then runs in dependency order in
        a single transaction together with the company template record.
        """
        template = await self._get_active_template(template_slug)

        company = await self.session.get(Company, company_id)
        if not company:
            raise NotFoundError(
                f"Company with ID '{company_id}' not found",
                code=TemplateErrorCode.COMPANY_NOT_FOUND,
                detail={"company_id": company_id},
            )

        if await self.company_templates.has_template(company_id):
            raise ConflictError(
                "Company already has a template installed.",
                code=TemplateErrorCode.ALREADY_INSTALLED,
                detail={"company_id": company_id},
            )

        ordered = resolve_installation_order(template.modules, modules, install_all_modules)

        # Rollback expires loaded rows, so keep plain values for the result
        template_id = template.id
        installed_slugs = [module.slug for module in ordered]

        try:
            async with transaction(self.session):
                counts = await StampingEngine(self.session).install_modules(
                    company_id, ordered, {}, installed_by
                )
                self.session.add(
                    CompanyTemplate(
                        company_id=company_id,
                        template_id=template_id,
                        installed_by=installed_by,
                    )
                )
                await self.session.flush()
        except IntegrityError as e:
            raise integrity_error_to_installation_error(
                e,
                "Company already has a template installed.",
                {"company_id": company_id, "template_slug": template_slug},
            ) from e
        except SQLAlchemyError as e:
            raise InstallationError(
                TemplateErrorCode.INSTALLATION_FAILED.value,
                code=TemplateErrorCode.INSTALLATION_FAILED,
                detail={"company_id": company_id, "template_slug": template_slug},
            ) from e

        logger.info(
            f"Installed template '{template_slug}' for company {company_id}: "
            f"modules={installed_slugs}, {counts.created_object_types} object types, "
            f"{counts.created_fields} fields, {counts.created_associations} associations"
        )

        return InstallationResult(
            success=True,
            template_slug=template_slug,
            installed_modules=installed_slugs,
            created_object_types=counts.created_object_types,
            created_fields=counts.created_fields,
            created_associations=counts.created_associations,
        )

    async def preview_installation(
        self,
        template_slug: str,
        modules: Sequence[str] | None = None,
        install_all_modules: bool = False,
    ) -> InstallationPlan:
        """Resolve a template install without touching any company data."""
        template = await self._get_active_template(template_slug)
        ordered = resolve_installation_order(template.modules, modules, install_all_modules)

        object_api_names: list[str] = []
        association_api_names: list[str] = []
        for module in ordered:
            object_api_names.extend(item.api_name for item in module.blueprint_objects or [])
            association_api_names.extend(
                item.api_name for item in module.blueprint_associations or []
            )

        return InstallationPlan(
            template_slug=template.slug,
            modules=[module.slug for module in ordered],
            object_api_names=object_api_names,
            association_api_names=association_api_names,
        )

    # -------------------------------------------------------------------------
    # Incremental module install
    # -------------------------------------------------------------------------

    async def install_module(
        self,
        company_id: str,
        module_slug: str,
        installed_by: str | None = None,
    ) -> InstallationResult:
        """Add one module of the company's installed template."""
        company_template = await self._get_company_template(company_id)
        template_slug = company_template.template.slug
        module = await self._get_module(company_template.template_id, module_slug)

        if await self.installed_modules.is_module_installed(company_id, module.id):
            raise ConflictError(
                f"Module '{module_slug}' is already installed.",
                code=TemplateErrorCode.MODULE_ALREADY_INSTALLED,
                detail={"company_id": company_id, "module": module_slug},
            )

        installed_slugs = await self.installed_modules.get_installed_module_slugs(company_id)
        installed = await self.installed_modules.find_modules_by_company_id(company_id)
        validate_against_installed(module, installed_slugs, installed)

        module = await self.templates.find_module_with_blueprints(module.id)
        object_type_ids = await self._existing_object_type_ids(company_id, module)

        try:
            async with transaction(self.session):
                counts = await StampingEngine(self.session).install_modules(
                    company_id, [module], object_type_ids, installed_by
                )
        except IntegrityError as e:
            raise integrity_error_to_installation_error(
                e,
                f"Module '{module_slug}' is already installed.",
                {"company_id": company_id, "module": module_slug},
            ) from e
        except SQLAlchemyError as e:
            raise InstallationError(
                TemplateErrorCode.INSTALLATION_FAILED.value,
                code=TemplateErrorCode.INSTALLATION_FAILED,
                detail={"company_id": company_id, "module": module_slug},
            ) from e

        logger.info(
            f"Installed module '{module_slug}' for company {company_id}: "
            f"{counts.created_object_types} object types, {counts.created_fields} fields, "
            f"{counts.created_associations} associations"
        )

        return InstallationResult(
            success=True,
            template_slug=template_slug,
            installed_modules=[module_slug],
            created_object_types=counts.created_object_types,
            created_fields=counts.created_fields,
            created_associations=counts.created_associations,
        )

    async def _existing_object_type_ids(self, company_id: str, module: TemplateModule) -> dict[str, str]:
        """
        Map api names the module needs to live object types the company
        already has. Objects the module would create must not exist yet.
        """
        existing = await self.schema.find_object_types_by_api_names(
            company_id, collect_required_api_names(module)
        )
        object_type_ids = {object_type.api_name: object_type.id for object_type in existing}

        duplicates = [
            item.api_name
            for item in module.blueprint_objects or []
            if item.api_name in object_type_ids
        ]
        if duplicates:
            raise BadRequestError(
                f"Object apiName values already exist: {', '.join(duplicates)}",
                code=TemplateErrorCode.OBJECT_API_NAME_TAKEN,
                detail={"module": module.slug, "duplicates": duplicates},
            )

        return object_type_ids

    # -------------------------------------------------------------------------
    # Uninstall
    # -------------------------------------------------------------------------

    async def uninstall_module(
        self,
        company_id: str,
        module_slug: str,
        force: bool = False,
    ) -> UninstallOutcome:
        """
        Remove a non-core module and everything it stamped.

        When the module's object types still hold CRM objects and `force` is
        not set, nothing is deleted and the outcome reports the row count.
        """
        company_template = await self._get_company_template(company_id)
        module = await self._get_module(company_template.template_id, module_slug)

        if module.is_core:
            raise BadRequestError(
                "Core modules cannot be uninstalled.",
                code=TemplateErrorCode.CORE_MODULE_REQUIRED,
                detail={"module": module_slug},
            )

        if not await self.installed_modules.is_module_installed(company_id, module.id):
            raise BadRequestError(
                "Module is not installed for this company.",
                code=TemplateErrorCode.MODULE_NOT_INSTALLED,
                detail={"company_id": company_id, "module": module_slug},
            )

        installed = await self.installed_modules.find_modules_by_company_id(company_id)
        dependents = find_dependents(module_slug, installed)
        if dependents:
            raise BadRequestError(
                f"Module '{module_slug}' is required by [{', '.join(dependents)}].",
                code=TemplateErrorCode.MODULE_IN_USE,
                detail={"module": module_slug, "dependents": dependents},
            )

        module = await self.templates.find_module_with_blueprints(module.id)
        try:
            return await UninstallEngine(self.session).uninstall(company_id, module, force)
        except SQLAlchemyError as e:
            raise InstallationError(
                TemplateErrorCode.INSTALLATION_FAILED.value,
                code=TemplateErrorCode.INSTALLATION_FAILED,
                detail={"company_id": company_id, "module": module_slug},
            ) from e

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_company_installation(self, company_id: str) -> CompanyInstallation:
        company_template = await self.company_templates.find_by_company_id(company_id)
        installed = await self.installed_modules.find_modules_by_company_id(company_id)

        template = None
        if company_template and company_template.template:
            template = _template_summary(company_template.template)

        return CompanyInstallation(
            template=template,
            modules=[_module_summary(module) for module in installed],
        )

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def _get_active_template(self, template_slug: str) -> CrmTemplate:
        template = await self.templates.find_by_slug_with_full_tree(template_slug)
        if not template:
            raise NotFoundError(
                f"CRM template with slug '{template_slug}' not found",
                code=TemplateErrorCode.TEMPLATE_NOT_FOUND,
                detail={"template_slug": template_slug},
            )
        if not template.is_active:
            raise BadRequestError(
                "Template is not active.",
                code=TemplateErrorCode.TEMPLATE_INACTIVE,
                detail={"template_slug": template_slug},
            )
        return template

    async def _get_company_template(self, company_id: str) -> CompanyTemplate:
        company_template = await self.company_templates.find_by_company_id(company_id)
        if not company_template:
            raise NotFoundError(
                "Company does not have a template installed.",
                code=TemplateErrorCode.NOT_INSTALLED,
                detail={"company_id": company_id},
            )
        return company_template

    async def _get_module(self, template_id: str, module_slug: str) -> TemplateModule:
        module = await self.templates.find_module_by_slug(template_id, module_slug)
        if not module:
            raise NotFoundError(
                f"CRM template module with slug '{module_slug}' not found",
                code=TemplateErrorCode.MODULE_NOT_FOUND,
                detail={"module": module_slug},
            )
        return module


def _template_summary(template: CrmTemplate) -> dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "slug": template.slug,
        "description": template.description,
        "icon": template.icon,
    }


def _module_summary(module: TemplateModule) -> dict[str, Any]:
    return {
        "id": module.id,
        "name": module.name,
        "slug": module.slug,
        "description": module.description,
        "is_core": module.is_core,
        "display_order": module.display_order,
    }
