"""
Installation Ledger Models - Which template and modules a company has installed
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm_backend.database import Base

if TYPE_CHECKING:
    from crm_backend.models.template import CrmTemplate, TemplateModule


class CompanyTemplate(Base):
    """Marker that a company has installed a template (at most one per company)."""

    __tablename__ = "company_templates"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    template_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_templates.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    installed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    installed_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Relationships
    template: Mapped["CrmTemplate"] = relationship("CrmTemplate")

    def __repr__(self) -> str:
        return f"<CompanyTemplate(company={self.company_id}, template={self.template_id})>"


class CompanyInstalledModule(Base):
    """A module currently installed for a company."""

    __tablename__ = "company_installed_modules"
    __table_args__ = (
        UniqueConstraint("company_id", "module_id", name="uq_company_installed_module"),
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
    module_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("crm_template_modules.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    installed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    installed_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Relationships
    module: Mapped["TemplateModule"] = relationship("TemplateModule")

    def __repr__(self) -> str:
        return f"<CompanyInstalledModule(company={self.company_id}, module={self.module_id})>"
