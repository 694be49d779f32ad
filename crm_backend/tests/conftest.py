"""
Pytest Configuration and Fixtures
"""

import pytest
from typing import AsyncGenerator

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crm_backend.database import Base, enable_sqlite_foreign_keys, get_db
from crm_backend.main import app
from crm_backend.models import (
    AssociationType,
    BlueprintAssociation,
    BlueprintField,
    BlueprintObject,
    Company,
    CrmObject,
    CrmTemplate,
    ObjectAssociation,
    ObjectType,
    TemplateModule,
)


# In-memory database shared by every connection of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client bound to the test database."""

    async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# =============================================================================
# Blueprint factories
# =============================================================================

def _title(api_name: str) -> str:
    return api_name.strip("_").replace("_", " ").title()


def build_module(spec: dict, display_order: int) -> TemplateModule:
    """
    Build a module from a compact dict.

    Keys: slug, is_core, depends_on, conflicts_with, display_order,
    objects [{api_name, fields [{api_name, field_type}]}],
    associations [{api_name, source, target}].
    """
    objects = []
    for object_order, object_spec in enumerate(spec.get("objects", [])):
        fields = [
            BlueprintField(
                name=_title(field_spec["api_name"]),
                api_name=field_spec["api_name"],
                field_type=field_spec.get("field_type", "string"),
                is_required=field_spec.get("is_required", False),
                shape=field_spec.get("shape"),
                protection="none",
                display_order=field_order,
            )
            for field_order, field_spec in enumerate(object_spec.get("fields", []))
        ]
        objects.append(
            BlueprintObject(
                name=_title(object_spec["api_name"]),
                api_name=object_spec["api_name"],
                protection=object_spec.get("protection", "delete_protected"),
                display_order=object_order,
                fields=fields,
            )
        )

    associations = [
        BlueprintAssociation(
            name=_title(association_spec["api_name"]),
            api_name=association_spec["api_name"],
            source_object_api_name=association_spec["source"],
            target_object_api_name=association_spec["target"],
            source_cardinality="one",
            target_cardinality="many",
            is_bidirectional=True,
            protection="none",
            display_order=association_order,
        )
        for association_order, association_spec in enumerate(spec.get("associations", []))
    ]

    return TemplateModule(
        name=_title(spec["slug"]),
        slug=spec["slug"],
        is_core=spec.get("is_core", False),
        depends_on=list(spec.get("depends_on", [])),
        conflicts_with=list(spec.get("conflicts_with", [])),
        display_order=spec.get("display_order", display_order),
        blueprint_objects=objects,
        blueprint_associations=associations,
    )


@pytest.fixture
def make_template(db_session):
    """Persist a template built from module dicts and return its id."""

    async def _make(slug: str, modules: list[dict], is_active: bool = True) -> str:
        template = CrmTemplate(
            name=_title(slug),
            slug=slug,
            is_active=is_active,
            modules=[build_module(spec, order) for order, spec in enumerate(modules)],
        )
        db_session.add(template)
        await db_session.commit()
        template_id = template.id
        db_session.expunge_all()
        return template_id

    return _make


@pytest.fixture
def make_company(db_session):
    async def _make(name: str = "Acme Movers") -> str:
        company = Company(name=name)
        db_session.add(company)
        await db_session.commit()
        company_id = company.id
        db_session.expunge_all()
        return company_id

    return _make


@pytest.fixture
def add_objects(db_session):
    """Create live CRM objects of a stamped object type; returns their ids."""

    async def _add(company_id: str, api_name: str, count: int = 1) -> list[str]:
        result = await db_session.execute(
            select(ObjectType.id).where(
                ObjectType.company_id == company_id,
                ObjectType.api_name == api_name,
            )
        )
        object_type_id = result.scalar_one()
        objects = [
            CrmObject(company_id=company_id, object_type_id=object_type_id, data={"index": index})
            for index in range(count)
        ]
        db_session.add_all(objects)
        await db_session.commit()
        object_ids = [item.id for item in objects]
        db_session.expunge_all()
        return object_ids

    return _add


@pytest.fixture
def link_objects(db_session):
    """Link two live objects through a stamped association type."""

    async def _link(company_id: str, association_api_name: str, source_id: str, target_id: str) -> str:
        result = await db_session.execute(
            select(AssociationType.id).where(
                AssociationType.company_id == company_id,
                AssociationType.api_name == association_api_name,
            )
        )
        link = ObjectAssociation(
            company_id=company_id,
            type_id=result.scalar_one(),
            source_object_id=source_id,
            target_object_id=target_id,
        )
        db_session.add(link)
        await db_session.commit()
        link_id = link.id
        db_session.expunge_all()
        return link_id

    return _link


# =============================================================================
# Sample templates
# =============================================================================

@pytest.fixture
def movers_modules() -> list[dict]:
    """A moving company template: core, inventory, reporting and storage."""
    return [
        {
            "slug": "core",
            "is_core": True,
            "objects": [
                {
                    "api_name": "_contact",
                    "fields": [
                        {"api_name": "first_name", "is_required": True},
                        {"api_name": "email", "field_type": "email"},
                    ],
                },
                {
                    "api_name": "_job",
                    "fields": [
                        {"api_name": "title", "is_required": True},
                        {"api_name": "move_date", "field_type": "date"},
                    ],
                },
            ],
            "associations": [
                {"api_name": "contact_jobs", "source": "_contact", "target": "_job"},
            ],
        },
        {
            "slug": "inventory",
            "depends_on": ["core"],
            "objects": [
                {
                    "api_name": "_inventory_item",
                    "fields": [
                        {"api_name": "name", "is_required": True},
                        {"api_name": "quantity", "field_type": "number"},
                    ],
                },
            ],
            "associations": [
                {"api_name": "job_inventory", "source": "_job", "target": "_inventory_item"},
            ],
        },
        {
            "slug": "reporting",
            "depends_on": ["core"],
            "objects": [
                {"api_name": "_report", "fields": [{"api_name": "title"}]},
            ],
        },
        {
            "slug": "storage",
            "depends_on": ["inventory"],
            "objects": [
                {"api_name": "_storage_unit", "fields": [{"api_name": "unit_number"}]},
            ],
            "associations": [
                {"api_name": "storage_inventory", "source": "_storage_unit", "target": "_inventory_item"},
            ],
        },
    ]


@pytest.fixture
async def movers_template(make_template, movers_modules) -> str:
    return await make_template("movers_crm", movers_modules)


@pytest.fixture
async def company_id(make_company) -> str:
    return await make_company()
