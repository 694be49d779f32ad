"""
Installation Errors

Typed failures raised by the installation engine. Each carries an HTTP-style
status code so the API layer can translate it without knowing the cause.
"""

from enum import Enum
from typing import Any


class TemplateErrorCode(str, Enum):
    """User-facing messages for template installation failures."""

    # Template
    TEMPLATE_NOT_FOUND = "Template not found"
    TEMPLATE_INACTIVE = "Template is not active and cannot be installed"

    # Company
    COMPANY_NOT_FOUND = "Company not found"

    # Module
    MODULE_NOT_FOUND = "Module not found"
    NO_MODULES_SELECTED = "No template modules were selected for installation"
    CORE_MODULE_REQUIRED = "Core modules cannot be uninstalled"
    MODULE_DEPENDENCY_MISSING = "Required dependency modules must be installed first"
    MODULE_CONFLICT = "This module conflicts with another selected or installed module"
    MODULE_IN_USE = "Other installed modules depend on this module"
    CIRCULAR_DEPENDENCY = "Circular module dependencies detected"

    # Blueprints
    OBJECT_API_NAME_TAKEN = "An object with this API name already exists"
    ASSOCIATION_TARGET_NOT_FOUND = "Association references missing object types"
    SCHEMA_API_NAME_TAKEN = "A schema entity with this API name already exists for this company"

    # Installation ledger
    ALREADY_INSTALLED = "This company already has a template installed"
    NOT_INSTALLED = "This company does not have a template installed"
    MODULE_ALREADY_INSTALLED = "This module is already installed for this company"
    MODULE_NOT_INSTALLED = "This module is not installed for this company"
    INSTALLATION_FAILED = "Installation failed. All changes have been rolled back."


class InstallationError(Exception):
    """Base class for all installation engine failures."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: TemplateErrorCode | None = None,
        detail: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.detail = detail or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code.name.lower() if self.code else "installation_error",
            "message": self.message,
            "detail": self.detail,
        }


class NotFoundError(InstallationError):
    """A referenced template, company or module does not exist."""
    status_code = 404


class ConflictError(InstallationError):
    """The requested state already exists."""
    status_code = 409


class BadRequestError(InstallationError):
    """The request fails structural or semantic validation."""
    status_code = 400
