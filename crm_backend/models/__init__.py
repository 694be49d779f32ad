"""
SQLAlchemy Models for the CRM template platform
"""

from crm_backend.models.company import Company
from crm_backend.models.template import (
    AssociationCardinality,
    BlueprintAssociation,
    BlueprintField,
    BlueprintObject,
    CrmTemplate,
    FieldType,
    TemplateItemProtection,
    TemplateModule,
)
from crm_backend.models.schema import (
    AssociationType,
    CrmObject,
    ObjectAssociation,
    ObjectField,
    ObjectType,
)
from crm_backend.models.installation import CompanyInstalledModule, CompanyTemplate

__all__ = [
    "Company",
    "CrmTemplate",
    "TemplateModule",
    "BlueprintObject",
    "BlueprintField",
    "BlueprintAssociation",
    "TemplateItemProtection",
    "AssociationCardinality",
    "FieldType",
    "ObjectType",
    "ObjectField",
    "AssociationType",
    "CrmObject",
    "ObjectAssociation",
    "CompanyTemplate",
    "CompanyInstalledModule",
]
