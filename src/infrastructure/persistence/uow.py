import contextlib
import dataclasses
from collections.abc import AsyncGenerator

from src.exceptions import AppError, UnitOfWorkError
from src.infrastructure.persistence.db import Database
from src.infrastructure.persistence.repositories.outbox import OutboxRepository


@dataclasses.dataclass
class Repository:
    """
    Repositories available inside a unit of work.
    """

    outbox: OutboxRepository


class UnitOfWork:
    """
    Commit/rollback lifecycle around a database session.
    """

    def __init__(self, db: Database) -> None:
        self.db: Database = db

    @contextlib.asynccontextmanager
    async def init(self) -> AsyncGenerator[Repository, None]:
        """
        One transaction, committed when the block exits cleanly.
        """
        async with self.db.connection() as conn:
            try:
                yield Repository(
                    outbox=OutboxRepository(conn, auto_commit=False),
                )
            except AppError:
                await conn.rollback()
                raise
            except Exception as exc:
                await conn.rollback()
                raise UnitOfWorkError("UnitOfWork transaction failed") from exc
            else:
                await conn.commit()

    @contextlib.asynccontextmanager
    async def autocommit(self) -> AsyncGenerator[Repository, None]:
        """
        Session where every repository call commits on its own.

        The delivery run needs this: a claim must be durable before the
        network call that follows it.
        """
        async with self.db.connection() as conn:
            try:
                yield Repository(
                    outbox=OutboxRepository(conn, auto_commit=True),
                )
            except AppError:
                raise
            except Exception as exc:
                raise UnitOfWorkError("UnitOfWork session failed") from exc
