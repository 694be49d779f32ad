"""
Template installation engine: dependency resolution, stamping and uninstall.

The service lives in crm_backend.installation.service; only the error types
are re-exported here so repositories can raise them without import cycles.
"""

from crm_backend.installation.errors import (
    BadRequestError,
    ConflictError,
    InstallationError,
    NotFoundError,
    TemplateErrorCode,
)

__all__ = [
    "InstallationError",
    "NotFoundError",
    "ConflictError",
    "BadRequestError",
    "TemplateErrorCode",
]
