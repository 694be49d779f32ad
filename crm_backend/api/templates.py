"""
Templates API - Install, preview and uninstall CRM templates for a company
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from crm_backend.database import get_db
from crm_backend.installation.service import TemplateInstallationService
from crm_backend.installation.uninstall import UninstallStatus

logger = logging.getLogger(__name__)
router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class InstallTemplateRequest(BaseModel):
    """Request to install a template into a company."""
    company_id: str
    template_slug: str
    modules: list[str] | None = Field(
        default=None,
        description="Optional module slugs. Core modules are always installed.",
    )
    install_all_modules: bool = False
    installed_by: str | None = None


class PreviewInstallationRequest(BaseModel):
    """Request to resolve a template install without writing anything."""
    template_slug: str
    modules: list[str] | None = None
    install_all_modules: bool = False


class InstallModuleRequest(BaseModel):
    """Request to add one module of the company's installed template."""
    company_id: str
    module_slug: str
    installed_by: str | None = None


class UninstallModuleRequest(BaseModel):
    """Request to remove a module. Without force, live data only gets reported."""
    company_id: str
    module_slug: str
    force: bool = False


class InstallationResponse(BaseModel):
    success: bool
    template_slug: str
    installed_modules: list[str]
    created_object_types: int
    created_fields: int
    created_associations: int


class InstallationPlanResponse(BaseModel):
    template_slug: str
    modules: list[str]
    object_api_names: list[str]
    association_api_names: list[str]


class UninstallModuleResponse(BaseModel):
    status: UninstallStatus
    message: str
    deleted_count: int
    removed_object_types: int = 0
    removed_association_types: int = 0


class TemplateSummary(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    icon: str | None = None


class ModuleSummary(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    is_core: bool
    display_order: int


class CompanyInstallationResponse(BaseModel):
    template: TemplateSummary | None = None
    modules: list[ModuleSummary] = []


# =============================================================================
# Routes
# =============================================================================

@router.post("/install", response_model=InstallationResponse)
async def install_template(
    request: InstallTemplateRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Install a template for a company.

    Installs the core modules plus the requested ones, in dependency order,
    as a single all-or-nothing transaction.
    """
    service = TemplateInstallationService(db)
    result = await service.install_template(
        company_id=request.company_id,
        template_slug=request.template_slug,
        modules=request.modules,
        install_all_modules=request.install_all_modules,
        installed_by=request.installed_by,
    )
    return InstallationResponse(**asdict(result))


@router.post("/install/preview", response_model=InstallationPlanResponse)
async def preview_installation(
    request: PreviewInstallationRequest,
    db: AsyncSession = Depends(get_db),
):
    """Show the modules and objects an install would create."""
    service = TemplateInstallationService(db)
    plan = await service.preview_installation(
        template_slug=request.template_slug,
        modules=request.modules,
        install_all_modules=request.install_all_modules,
    )
    return InstallationPlanResponse(**asdict(plan))


@router.post("/install-module", response_model=InstallationResponse)
async def install_module(
    request: InstallModuleRequest,
    db: AsyncSession = Depends(get_db),
):
    service = TemplateInstallationService(db)
    result = await service.install_module(
        company_id=request.company_id,
        module_slug=request.module_slug,
        installed_by=request.installed_by,
    )
    return InstallationResponse(**asdict(result))


@router.post("/uninstall-module", response_model=UninstallModuleResponse)
async def uninstall_module(
    request: UninstallModuleRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Uninstall a non-core module.

    If the module's objects still hold data and force is not set, nothing is
    deleted and the response carries status "reported" with the row count.
    """
    service = TemplateInstallationService(db)
    outcome = await service.uninstall_module(
        company_id=request.company_id,
        module_slug=request.module_slug,
        force=request.force,
    )
    return UninstallModuleResponse(**asdict(outcome))


@router.get("/company/{company_id}", response_model=CompanyInstallationResponse)
async def get_company_installation(
    company_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get the template and modules installed for a company."""
    service = TemplateInstallationService(db)
    installation = await service.get_company_installation(company_id)
    return CompanyInstallationResponse(
        template=installation.template,
        modules=installation.modules,
    )
