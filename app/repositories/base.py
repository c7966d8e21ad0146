from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction


class BaseRepository:
    """Holds the ``AsyncSession`` shared by the repositories of one unit of work.

    The rule and workflow services build several repositories over the
    same session so that a lead update, its execution record and its
    step-result log commit or roll back together.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def flush(self) -> None:
        await self._db.flush()

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()

    async def begin_savepoint(self) -> AsyncSessionTransaction:
        """Open a SAVEPOINT inside the current transaction.

        Rolling the returned transaction back discards only the work done
        since it was opened, which leaves the outer transaction usable
        after a failed statement.
        """
        return await self._db.begin_nested()
