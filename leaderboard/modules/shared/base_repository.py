"""
Generic async repository over one mapped model.

Subclasses own the session lifecycle (usually via DatabaseService) and call
these helpers with the session they opened. Nothing here commits: the
transaction boundary belongs to the caller.

Usage
-----
    class PlayerStore(BaseRepository[Player]):
        async def find_by_username(self, username: str) -> Optional[PlayerRecord]:
            async with self._db.get_session() as session:
                player = await self.find_one_where(session, Player.username == username)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Type Parameters:
        T: Mapped model class with an ``id`` primary key column
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    def _trace(self, action: str, **fields: Any) -> None:
        self.log.debug(
            f"{self.model_class.__name__}.{action}",
            extra={"model": self.model_class.__name__, **fields},
        )

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Row by primary key, or None."""
        instance = await session.get(self.model_class, id_value)
        self._trace("get", id=str(id_value), found=instance is not None)
        return instance

    async def get_many(self, session: AsyncSession, id_values: Sequence[Any]) -> List[T]:
        """Rows for ``id_values`` in no particular order; unknown ids are skipped."""
        if not id_values:
            return []

        column = self.model_class.id  # type: ignore[attr-defined]
        result = await session.scalars(select(self.model_class).where(column.in_(id_values)))
        instances = list(result.all())

        self._trace("get_many", requested=len(id_values), found=len(instances))
        return instances

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Single row matching ``conditions``.

        ``for_update`` takes a row lock (SELECT ... FOR UPDATE); SQLite
        ignores it.
        """
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()

        instance = (await session.scalars(stmt)).one_or_none()
        self._trace("find_one_where", found=instance is not None, locked=for_update)
        return instance

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        total = int((await session.execute(stmt)).scalar_one())
        self._trace("count", count=total)
        return total

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    # =========================================================================
    # Unit-of-work helpers
    # =========================================================================

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self._trace("add")
        return instance

    async def delete_by_pk(self, session: AsyncSession, id_value: Any) -> bool:
        """
        Single DELETE ... RETURNING; True only if this statement removed the row.

        Two concurrent callers cannot both see success.
        """
        column = self.model_class.id  # type: ignore[attr-defined]
        stmt = delete(self.model_class).where(column == id_value).returning(column)
        removed = (await session.execute(stmt)).scalar_one_or_none() is not None
        self._trace("delete_by_pk", id=str(id_value), removed=removed)
        return removed

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()

    async def refresh(self, session: AsyncSession, instance: T) -> T:
        """Reload server-generated columns (timestamps) after a flush."""
        await session.refresh(instance)
        return instance
