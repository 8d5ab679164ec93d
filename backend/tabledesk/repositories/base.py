"""
Base Repository implementation.
Common data access patterns with restaurant (tenant) isolation.

Every lookup filters by restaurant_id. A row that exists under another
restaurant is reported as ForbiddenError, a missing row as NotFoundError.
"""

from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from tabledesk_shared.config.settings import settings
from tabledesk_shared.utils.exceptions import ForbiddenError, NotFoundError

ModelT = TypeVar("ModelT")


def for_update(query: Select, *lock_targets) -> Select:
    """
    Turn a query into a locking read.

    ``populate_existing`` refreshes objects already in the identity map, so
    the caller always sees the row as of the moment the lock was granted.
    Only the listed tables are locked (outer-joined eager loads cannot be).
    """
    of = lock_targets or None
    return query.with_for_update(of=of).execution_options(populate_existing=True)


@dataclass
class RepositoryFilters:
    """Base filters for repository queries."""

    limit: int = 0
    offset: int = 0

    def __post_init__(self):
        """Validate and normalize pagination."""
        if self.limit <= 0:
            self.limit = settings.default_page_size
        self.limit = min(self.limit, settings.max_page_size)
        self.offset = max(0, self.offset)


class TenantRepository(Generic[ModelT]):
    """
    Repository for models that carry a restaurant_id column.

    Subclasses set ``model`` and ``entity_name``.
    """

    model: type[ModelT]
    entity_name: str = "Entity"

    def __init__(self, db: Session):
        self._db = db

    def _base_query(self, restaurant_id: int) -> Select:
        return select(self.model).where(self.model.restaurant_id == restaurant_id)

    def _owner_of(self, entity_id: int) -> int | None:
        return self._db.scalar(select(self.model.restaurant_id).where(self.model.id == entity_id))

    def find_by_id(self, entity_id: int, restaurant_id: int, lock: bool = False) -> ModelT | None:
        query = self._base_query(restaurant_id).where(self.model.id == entity_id)
        if lock:
            query = for_update(query, self.model)
        return self._db.scalar(query)

    def get(self, entity_id: int, restaurant_id: int, lock: bool = False) -> ModelT:
        """
        Load one entity of this restaurant, optionally locking its row.

        Raises:
            NotFoundError: No such entity.
            ForbiddenError: The entity belongs to another restaurant.
        """
        entity = self.find_by_id(entity_id, restaurant_id, lock=lock)
        if entity is None:
            owner = self._owner_of(entity_id)
            if owner is None:
                raise NotFoundError(self.entity_name, entity_id)
            raise ForbiddenError(
                f"access this {self.entity_name.lower()}",
                entity_id=entity_id,
                restaurant_id=restaurant_id,
            )
        return entity

    def lock_many(self, entity_ids: list[int], restaurant_id: int) -> Sequence[ModelT]:
        """Lock several rows in ascending id order (a fixed order avoids deadlocks)."""
        if not entity_ids:
            return []
        query = (
            self._base_query(restaurant_id)
            .where(self.model.id.in_(entity_ids))
            .order_by(self.model.id)
        )
        return self._db.scalars(for_update(query, self.model)).all()

    def add(self, entity: ModelT) -> ModelT:
        """Stage a new entity and flush so its id is available."""
        self._db.add(entity)
        self._db.flush()
        return entity
