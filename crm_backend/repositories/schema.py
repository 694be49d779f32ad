"""
Live Schema Repository - Company-scoped object types, fields, associations and data

All statements are scoped by company_id and run inside whatever transaction the
caller has open on the session.
"""

from typing import Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_backend.models import (
    AssociationType,
    CompanyInstalledModule,
    CrmObject,
    ObjectAssociation,
    ObjectField,
    ObjectType,
)


class LiveSchemaRepository:
    """Create, find and delete stamped schema entities for a company."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # Create
    # =========================================================================

    async def add_object_type(self, object_type: ObjectType) -> ObjectType:
        """Persist an object type and flush so its id is usable immediately."""
        self.session.add(object_type)
        await self.session.flush()
        return object_type

    async def add_fields(self, fields: Sequence[ObjectField]) -> int:
        self.session.add_all(fields)
        await self.session.flush()
        return len(fields)

    async def add_association_types(self, association_types: Sequence[AssociationType]) -> int:
        self.session.add_all(association_types)
        await self.session.flush()
        return len(association_types)

    async def add_installed_module(self, installed_module: CompanyInstalledModule) -> None:
        self.session.add(installed_module)
        await self.session.flush()

    # =========================================================================
    # Find
    # =========================================================================

    async def find_object_types_by_api_names(
        self,
        company_id: str,
        api_names: Sequence[str],
    ) -> list[ObjectType]:
        if not api_names:
            return []
        result = await self.session.execute(
            select(ObjectType).where(
                ObjectType.company_id == company_id,
                ObjectType.api_name.in_(api_names),
            )
        )
        return list(result.scalars().all())

    async def find_object_type_ids_by_origin(
        self,
        company_id: str,
        origin_ids: Sequence[str],
    ) -> list[str]:
        if not origin_ids:
            return []
        result = await self.session.execute(
            select(ObjectType.id).where(
                ObjectType.company_id == company_id,
                ObjectType.template_origin_id.in_(origin_ids),
            )
        )
        return list(result.scalars().all())

    async def find_association_type_ids(
        self,
        company_id: str,
        origin_ids: Sequence[str],
        object_type_ids: Sequence[str],
    ) -> list[str]:
        """
        Association types stamped from the given blueprints, plus any whose
        source or target is one of the given object types.
        """
        conditions = []
        if origin_ids:
            conditions.append(AssociationType.template_origin_id.in_(origin_ids))
        if object_type_ids:
            conditions.append(AssociationType.source_object_type_id.in_(object_type_ids))
            conditions.append(AssociationType.target_object_type_id.in_(object_type_ids))
        if not conditions:
            return []

        result = await self.session.execute(
            select(AssociationType.id).where(
                AssociationType.company_id == company_id,
                or_(*conditions),
            )
        )
        return list(result.scalars().all())

    async def count_objects(self, company_id: str, object_type_ids: Sequence[str]) -> int:
        if not object_type_ids:
            return 0
        result = await self.session.execute(
            select(func.count())
            .select_from(CrmObject)
            .where(
                CrmObject.company_id == company_id,
                CrmObject.object_type_id.in_(object_type_ids),
            )
        )
        return result.scalar_one()

    async def find_object_ids(self, company_id: str, object_type_ids: Sequence[str]) -> list[str]:
        if not object_type_ids:
            return []
        result = await self.session.execute(
            select(CrmObject.id).where(
                CrmObject.company_id == company_id,
                CrmObject.object_type_id.in_(object_type_ids),
            )
        )
        return list(result.scalars().all())

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_object_associations(
        self,
        company_id: str,
        association_type_ids: Sequence[str],
        object_ids: Sequence[str],
    ) -> int:
        """Delete links of the given types or touching the given objects."""
        conditions = []
        if association_type_ids:
            conditions.append(ObjectAssociation.type_id.in_(association_type_ids))
        if object_ids:
            conditions.append(ObjectAssociation.source_object_id.in_(object_ids))
            conditions.append(ObjectAssociation.target_object_id.in_(object_ids))
        if not conditions:
            return 0

        return await self._delete(
            delete(ObjectAssociation).where(
                ObjectAssociation.company_id == company_id,
                or_(*conditions),
            )
        )

    async def delete_objects(self, company_id: str, object_type_ids: Sequence[str]) -> int:
        if not object_type_ids:
            return 0
        return await self._delete(
            delete(CrmObject).where(
                CrmObject.company_id == company_id,
                CrmObject.object_type_id.in_(object_type_ids),
            )
        )

    async def delete_fields(self, company_id: str, object_type_ids: Sequence[str]) -> int:
        if not object_type_ids:
            return 0
        return await self._delete(
            delete(ObjectField).where(
                ObjectField.company_id == company_id,
                ObjectField.object_type_id.in_(object_type_ids),
            )
        )

    async def delete_association_types(self, company_id: str, association_type_ids: Sequence[str]) -> int:
        if not association_type_ids:
            return 0
        return await self._delete(
            delete(AssociationType).where(
                AssociationType.company_id == company_id,
                AssociationType.id.in_(association_type_ids),
            )
        )

    async def delete_object_types(self, company_id: str, object_type_ids: Sequence[str]) -> int:
        if not object_type_ids:
            return 0
        return await self._delete(
            delete(ObjectType).where(
                ObjectType.company_id == company_id,
                ObjectType.id.in_(object_type_ids),
            )
        )

    async def delete_installed_module(self, company_id: str, module_id: str) -> int:
        return await self._delete(
            delete(CompanyInstalledModule).where(
                CompanyInstalledModule.company_id == company_id,
                CompanyInstalledModule.module_id == module_id,
            )
        )

    async def _delete(self, statement) -> int:
        result = await self.session.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
