# Offset pagination shared by the listing endpoints

from typing import Optional, Dict, Any, List, TypeVar, Type
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import desc, asc, select, func
from pydantic import BaseModel
from trackpool.schemas.pagination import PaginatedResponse, SortOrder, PaginationInfo
import logging

SchemaT = TypeVar('SchemaT', bound=BaseModel)
logger = logging.getLogger(__name__)

RANGE_OPERATORS = {
    "gte": lambda column, value: column >= value,
    "lte": lambda column, value: column <= value,
    "eq": lambda column, value: column == value,
}


class PaginationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _build_eager_loads(self, model_class, paths: List[str]):
        """Turn dotted relationship paths ("owner", "user.labels") into selectinload options."""
        options = []
        for path in dict.fromkeys(paths):
            option = None
            owner = model_class
            for name in path.split("."):
                relationship_attr = getattr(owner, name, None)
                if relationship_attr is None:
                    raise ValueError(f"Cannot eager load '{path}': {owner.__name__} has no '{name}'")
                option = selectinload(relationship_attr) if option is None else option.selectinload(relationship_attr)
                owner = relationship_attr.property.mapper.class_
            options.append(option)
        return options

    def _build_where_filters(self, model_class, filters: Optional[Dict[str, Any]]):
        conditions = []
        for name, value in (filters or {}).items():
            column = getattr(model_class, name, None)
            if column is None or value is None:
                continue
            if not isinstance(value, dict):
                conditions.append(column == value)
                continue
            # range filter, e.g. {"gte": start, "lte": end}
            for operator, bound in value.items():
                if operator in RANGE_OPERATORS:
                    conditions.append(RANGE_OPERATORS[operator](column, bound))
        return conditions

    async def paginate(
        self,
        model_class,
        output_schema: Type[SchemaT],
        page: Optional[int] = None,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: SortOrder = SortOrder.desc,
        filters: Optional[Dict[str, Any]] = None,
        eager_load: Optional[List[str]] = None,
    ) -> PaginatedResponse:
        """
        Fetch one page of ``model_class`` rows converted to ``output_schema``.

        Args:
            model_class: mapped class to list
            output_schema: pydantic schema built from each row
            page: 1-based page number, first page when missing
            limit: rows per page
            sort_by: column to order by, primary key breaks ties
            sort_order: asc or desc
            filters: column -> value, or column -> {"gte"/"lte"/"eq": value}
            eager_load: relationship paths loaded alongside the rows
        """
        conditions = self._build_where_filters(model_class, filters)
        page = page if page and page > 0 else 1

        total_items = (await self.db.execute(
            select(func.count()).select_from(select(model_class).where(*conditions).subquery())
        )).scalar() or 0
        total_pages = -(-total_items // limit)

        direction = desc if sort_order == SortOrder.desc else asc
        sort_column = getattr(model_class, sort_by, None)
        if sort_column is None:
            sort_column = model_class.created_at
        query = (
            select(model_class)
            .where(*conditions)
            .order_by(direction(sort_column), direction(model_class.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        options = self._build_eager_loads(model_class, eager_load or [])
        if options:
            query = query.options(*options)

        rows = (await self.db.execute(query)).scalars().all()
        logger.debug(f"{model_class.__name__} page {page}/{total_pages}: {len(rows)} rows")
        return PaginatedResponse(
            data=[output_schema.model_validate(row) for row in rows],
            pagination=PaginationInfo(
                current_page=page,
                total_pages=total_pages,
                total_items=total_items,
                items_per_page=limit,
                has_next=page < total_pages,
                has_previous=page > 1,
            ),
        )
