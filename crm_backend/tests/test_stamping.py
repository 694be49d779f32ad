"""
Tests for stamping module blueprints into a company schema
"""

import pytest
from sqlalchemy import select

from crm_backend.installation.errors import BadRequestError, TemplateErrorCode
from crm_backend.installation.stamping import StampingEngine
from crm_backend.models import (
    AssociationType,
    CompanyInstalledModule,
    ObjectField,
    ObjectType,
)
from crm_backend.repositories.templates import TemplateRepository


async def load_modules(session, slug, module_slugs):
    template = await TemplateRepository(session).find_by_slug_with_full_tree(slug)
    by_slug = {module.slug: module for module in template.modules}
    return [by_slug[module_slug] for module_slug in module_slugs]


class TestStampingEngine:
    """Tests for StampingEngine.install_modules."""

    async def test_counts_and_provenance(self, db_session, movers_template, company_id):
        """Test stamped counts and template provenance."""
        modules = await load_modules(db_session, "movers_crm", ["core", "inventory"])
        blueprint_ids = {
            blueprint.api_name: blueprint.id
            for module in modules
            for blueprint in module.blueprint_objects
        }
        object_type_ids: dict[str, str] = {}

        counts = await StampingEngine(db_session).install_modules(
            company_id, modules, object_type_ids, installed_by="user-1"
        )

        assert counts.created_object_types == 3
        assert counts.created_fields == 6
        assert counts.created_associations == 2
        assert set(object_type_ids) == {"_contact", "_job", "_inventory_item"}

        result = await db_session.execute(
            select(ObjectType).where(ObjectType.company_id == company_id)
        )
        object_types = {object_type.api_name: object_type for object_type in result.scalars()}
        for api_name, object_type in object_types.items():
            assert object_type.template_origin_id == blueprint_ids[api_name]
            assert object_type.protection == "delete_protected"

    async def test_fields_copy_blueprint_attributes(self, db_session, movers_template, company_id):
        """Test fields copy blueprint attributes."""
        modules = await load_modules(db_session, "movers_crm", ["core"])

        await StampingEngine(db_session).install_modules(company_id, modules, {})

        result = await db_session.execute(
            select(ObjectField)
            .join(ObjectType, ObjectType.id == ObjectField.object_type_id)
            .where(ObjectType.api_name == "_contact")
        )
        fields = {field.api_name: field for field in result.scalars()}

        assert set(fields) == {"first_name", "email"}
        assert fields["first_name"].is_required is True
        assert fields["email"].field_type == "email"
        assert all(field.template_origin_id for field in fields.values())

    async def test_association_resolves_objects_from_earlier_module(
        self, db_session, movers_template, company_id
    ):
        """Test associations resolve objects stamped by an earlier module."""
        modules = await load_modules(db_session, "movers_crm", ["core", "inventory"])
        object_type_ids: dict[str, str] = {}

        await StampingEngine(db_session).install_modules(company_id, modules, object_type_ids)

        result = await db_session.execute(
            select(AssociationType).where(AssociationType.api_name == "job_inventory")
        )
        association = result.scalar_one()
        assert association.source_object_type_id == object_type_ids["_job"]
        assert association.target_object_type_id == object_type_ids["_inventory_item"]
        assert association.source_cardinality == "one"
        assert association.target_cardinality == "many"

    async def test_records_installed_modules(self, db_session, movers_template, company_id):
        """Test each stamped module is recorded as installed."""
        modules = await load_modules(db_session, "movers_crm", ["core", "reporting"])

        await StampingEngine(db_session).install_modules(
            company_id, modules, {}, installed_by="user-1"
        )

        result = await db_session.execute(
            select(CompanyInstalledModule).where(CompanyInstalledModule.company_id == company_id)
        )
        rows = list(result.scalars())
        assert {row.module_id for row in rows} == {module.id for module in modules}
        assert all(row.installed_by == "user-1" for row in rows)

    async def test_unresolved_association_raises(self, db_session, make_template, company_id):
        """Test an association with a missing endpoint raises."""
        await make_template("broken", [
            {
                "slug": "core",
                "is_core": True,
                "objects": [{"api_name": "_contact"}],
                "associations": [{"api_name": "lead_contact", "source": "_lead", "target": "_contact"}],
            },
        ])
        modules = await load_modules(db_session, "broken", ["core"])

        with pytest.raises(BadRequestError) as exc_info:
            await StampingEngine(db_session).install_modules(company_id, modules, {})

        assert exc_info.value.code == TemplateErrorCode.ASSOCIATION_TARGET_NOT_FOUND
        assert exc_info.value.detail["missing_object_api_names"] == ["_lead"]
        assert "lead_contact" in exc_info.value.message
