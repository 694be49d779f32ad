"""
Template Models - Versionless CRM blueprints grouped into modules
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    String,
    DateTime,
    JSON,
    Boolean,
    Integer,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm_backend.database import Base


class TemplateItemProtection(str, Enum):
    """Protection levels for template-created items."""
    FULL = "full"  # cannot delete, cannot modify core attributes
    DELETE_PROTECTED = "delete_protected"  # cannot delete, can modify
    NONE = "none"


class AssociationCardinality(str, Enum):
    """Maximum count on one side of an association."""
    ONE = "one"
    MANY = "many"


class FieldType(str, Enum):
    """Supported field types for CRM object fields."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    JSON = "json"

    # Smart/structured types
    PHONE = "phone"
    EMAIL = "email"
    URL = "url"
    ADDRESS = "address"

    # UI/extended types
    TEXTAREA = "textarea"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    CURRENCY = "currency"

    # Formula-driven
    FORMULA = "formula"
    PROTECTED_PHONE = "protected_phone"
    PROTECTED_EMAIL = "protected_email"
    PROTECTED_ADDRESS = "protected_address"


class CrmTemplate(Base):
    """Catalog entry bundling one or more installable modules."""

    __tablename__ = "crm_templates"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Template info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Catalog state
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    # Relationships
    modules: Mapped[list["TemplateModule"]] = relationship(
        "TemplateModule",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateModule.display_order",
    )

    def __repr__(self) -> str:
        return f"<CrmTemplate(slug={self.slug}, active={self.is_active})>"


class TemplateModule(Base):
    """Named group of blueprints with dependency and conflict constraints."""

    __tablename__ = "crm_template_modules"
    __table_args__ = (
        UniqueConstraint("template_id", "slug", name="uq_template_module_slug"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    template_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Module info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_core: Mapped[bool] = mapped_column(Boolean, default=False)

    # Constraints on other modules of the same template, by slug
    depends_on: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    conflicts_with: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    template: Mapped["CrmTemplate"] = relationship("CrmTemplate", back_populates="modules")
    blueprint_objects: Mapped[list["BlueprintObject"]] = relationship(
        "BlueprintObject",
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="BlueprintObject.display_order",
    )
    blueprint_associations: Mapped[list["BlueprintAssociation"]] = relationship(
        "BlueprintAssociation",
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="BlueprintAssociation.display_order",
    )

    def __repr__(self) -> str:
        return f"<TemplateModule(slug={self.slug}, core={self.is_core})>"


class BlueprintObject(Base):
    """Template definition of an object type."""

    __tablename__ = "crm_template_blueprint_objects"
    __table_args__ = (
        UniqueConstraint("module_id", "api_name", name="uq_blueprint_object_api_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    module_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_template_modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    protection: Mapped[str] = mapped_column(
        String(32),
        default=TemplateItemProtection.NONE.value,
    )
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    module: Mapped["TemplateModule"] = relationship(
        "TemplateModule",
        back_populates="blueprint_objects",
    )
    fields: Mapped[list["BlueprintField"]] = relationship(
        "BlueprintField",
        back_populates="blueprint_object",
        cascade="all, delete-orphan",
        order_by="BlueprintField.display_order",
    )

    def __repr__(self) -> str:
        return f"<BlueprintObject(api_name={self.api_name})>"


class BlueprintField(Base):
    """Template definition of a field on a blueprint object."""

    __tablename__ = "crm_template_blueprint_fields"
    __table_args__ = (
        UniqueConstraint("blueprint_object_id", "api_name", name="uq_blueprint_field_api_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    blueprint_object_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_template_blueprint_objects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)

    # Structure of the value (e.g. PHONE) and of its configuration (e.g. SELECT options)
    shape: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    config_shape: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    protection: Mapped[str] = mapped_column(
        String(32),
        default=TemplateItemProtection.NONE.value,
    )
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    blueprint_object: Mapped["BlueprintObject"] = relationship(
        "BlueprintObject",
        back_populates="fields",
    )

    def __repr__(self) -> str:
        return f"<BlueprintField(api_name={self.api_name}, type={self.field_type})>"


class BlueprintAssociation(Base):
    """
    Template definition of an association between two blueprint objects.

    Source and target are object api names, resolved against every object
    stamped in the same installation.
    """

    __tablename__ = "crm_template_blueprint_associations"
    __table_args__ = (
        UniqueConstraint("module_id", "api_name", name="uq_blueprint_association_api_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    module_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_template_modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    source_object_api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    target_object_api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    source_cardinality: Mapped[str] = mapped_column(
        String(16),
        default=AssociationCardinality.MANY.value,
    )
    target_cardinality: Mapped[str] = mapped_column(
        String(16),
        default=AssociationCardinality.MANY.value,
    )
    is_bidirectional: Mapped[bool] = mapped_column(Boolean, default=True)
    reverse_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    protection: Mapped[str] = mapped_column(
        String(32),
        default=TemplateItemProtection.NONE.value,
    )
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    module: Mapped["TemplateModule"] = relationship(
        "TemplateModule",
        back_populates="blueprint_associations",
    )

    def __repr__(self) -> str:
        return (
            f"<BlueprintAssociation(api_name={self.api_name}, "
            f"{self.source_object_api_name}->{self.target_object_api_name})>"
        )
