"""
Live Schema Models - Company-scoped object types, fields, associations and data rows

Rows carrying a template_origin_id were stamped from a blueprint. The column is a
plain lookup key (no foreign key, no cascade) so blueprints can be edited or
removed without touching installed schemas.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    String,
    DateTime,
    JSON,
    Boolean,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm_backend.database import Base
from crm_backend.models.template import AssociationCardinality


class ObjectType(Base):
    """A company's CRM object type (a schema "table")."""

    __tablename__ = "crm_object_types"
    __table_args__ = (
        UniqueConstraint("company_id", "api_name", name="uq_object_type_company_api_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Provenance
    template_origin_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    protection: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<ObjectType(api_name={self.api_name}, company={self.company_id})>"


class ObjectField(Base):
    """Field definition on a company object type."""

    __tablename__ = "crm_object_fields"
    __table_args__ = (
        UniqueConstraint("object_type_id", "api_name", name="uq_object_field_api_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    object_type_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_object_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    field_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    shape: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    config_shape: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Provenance
    template_origin_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    protection: Mapped[str | None] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return f"<ObjectField(api_name={self.api_name}, type={self.field_type})>"


class AssociationType(Base):
    """Allowed relationship between two company object types."""

    __tablename__ = "crm_association_types"
    __table_args__ = (
        UniqueConstraint("company_id", "api_name", name="uq_association_type_company_api_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_object_type_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_object_types.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    target_object_type_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_object_types.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
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

    # Provenance
    template_origin_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    protection: Mapped[str | None] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return f"<AssociationType(api_name={self.api_name}, company={self.company_id})>"


class CrmObject(Base):
    """A data row belonging to a company object type."""

    __tablename__ = "crm_objects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    object_type_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_object_types.id"),
        nullable=False,
        index=True,
    )
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<CrmObject(id={self.id}, type={self.object_type_id})>"


class ObjectAssociation(Base):
    """A link between two CRM objects through an association type."""

    __tablename__ = "crm_object_associations"
    __table_args__ = (
        UniqueConstraint(
            "company_id",
            "type_id",
            "source_object_id",
            "target_object_id",
            name="uq_object_association_link",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_association_types.id"),
        nullable=False,
        index=True,
    )
    source_object_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_objects.id"),
        nullable=False,
        index=True,
    )
    target_object_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_objects.id"),
        nullable=False,
        index=True,
    )
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<ObjectAssociation({self.source_object_id}->{self.target_object_id})>"
