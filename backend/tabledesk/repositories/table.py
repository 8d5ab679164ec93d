"""
Table and TableSession repositories.
"""

from datetime import datetime
from typing import Sequence

from sqlalchemy import Select, select

from tabledesk.models import Table, TableSession
from tabledesk_shared.config.constants import SessionStatus
from tabledesk_shared.utils.exceptions import NotFoundError

from .base import TenantRepository, for_update


class TableRepository(TenantRepository[Table]):
    """Active tables only; a deactivated table is reported as missing."""

    model = Table
    entity_name = "Table"

    def _base_query(self, restaurant_id: int) -> Select:
        return super()._base_query(restaurant_id).where(Table.is_active.is_(True))

    def _owner_of(self, entity_id: int) -> int | None:
        return self._db.scalar(
            select(Table.restaurant_id).where(Table.id == entity_id, Table.is_active.is_(True))
        )

    def find_all(self, restaurant_id: int) -> Sequence[Table]:
        return self._db.scalars(
            self._base_query(restaurant_id).order_by(Table.name, Table.id)
        ).all()

    def get_by_code(self, code: str, lock: bool = False) -> Table:
        """
        Resolve a table from its QR code. Codes are globally unique, so this
        is how guest calls learn which restaurant they belong to.
        """
        query = select(Table).where(Table.code == code, Table.is_active.is_(True))
        if lock:
            query = for_update(query, Table)
        table = self._db.scalar(query)
        if table is None:
            raise NotFoundError("Table", table_code=code)
        return table

    def code_exists(self, code: str) -> bool:
        """Deactivated tables keep their code reserved."""
        return self._db.scalar(select(Table.id).where(Table.code == code)) is not None


class TableSessionRepository(TenantRepository[TableSession]):
    model = TableSession
    entity_name = "Table session"

    def latest_open_for_table(
        self,
        table_id: int,
        restaurant_id: int,
        opened_since: datetime | None = None,
        lock: bool = False,
    ) -> TableSession | None:
        """Most recent non-closed session of a table, optionally within a business day."""
        query = self._base_query(restaurant_id).where(
            TableSession.table_id == table_id,
            TableSession.status != SessionStatus.CLOSED,
        )
        if opened_since is not None:
            query = query.where(TableSession.opened_at >= opened_since)
        query = query.order_by(TableSession.opened_at.desc(), TableSession.id.desc()).limit(1)
        if lock:
            query = for_update(query, TableSession)
        return self._db.scalar(query)

    def find_open_for_table(
        self, session_id: int, table_id: int, restaurant_id: int, lock: bool = False
    ) -> TableSession | None:
        """A specific session, only if it is still open and belongs to the table."""
        query = self._base_query(restaurant_id).where(
            TableSession.id == session_id,
            TableSession.table_id == table_id,
            TableSession.status != SessionStatus.CLOSED,
        )
        if lock:
            query = for_update(query, TableSession)
        return self._db.scalar(query)

    def code_exists(self, session_code: str) -> bool:
        return self._db.scalar(
            select(TableSession.id).where(TableSession.session_code == session_code)
        ) is not None
