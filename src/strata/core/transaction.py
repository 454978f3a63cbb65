"""Nested transaction scopes over a single connection.

The outermost scope issues ``BEGIN``/``COMMIT``/``ROLLBACK``.  Scopes opened
while another is active become savepoints (``SAVEPOINT sp_<depth>``), so an
inner rollback only undoes its own work.

Scopes are context managers.  Leaving one without calling :meth:`commit`
rolls it back, including on exceptional exits::

    with db.begin() as tx:
        record.save(author)
        with db.begin() as inner:
            junction.link({"author": author, "book": book})
            inner.commit()
        tx.commit()

Scopes must close in reverse order of opening; anything else is an
:class:`~strata.core.errors.AccessError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .errors import AccessError
from .logging import get_logger

if TYPE_CHECKING:
    from .protocols import Driver

logger = get_logger(__name__)


class TransactionManager:
    """Owns the stack of open scopes for one driver."""

    def __init__(self, driver: Driver):
        self._driver = driver
        self._stack: list[Transaction] = []

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def active(self) -> bool:
        return bool(self._stack)

    def begin(self) -> Transaction:
        """Open a transaction, or a savepoint inside the current one."""
        depth = len(self._stack)
        savepoint = f"sp_{depth}" if depth else None
        if savepoint is None:
            self._driver.begin()
        else:
            self._driver.execute(f"SAVEPOINT {savepoint}")
        tx = Transaction(self, savepoint)
        self._stack.append(tx)
        return tx

    def _close(self, tx: Transaction, commit: bool) -> None:
        if not self._stack or self._stack[-1] is not tx:
            raise AccessError("Transactions must be closed in the reverse order they were opened")
        self._stack.pop()

        if not self._driver.in_transaction:
            # The engine already ended the transaction (implicit DDL commit on MySQL).
            logger.warning(
                "transaction.implicitly_closed",
                savepoint=tx.savepoint,
                requested="commit" if commit else "rollback",
            )
            return

        if tx.savepoint is None:
            if commit:
                self._driver.commit()
            else:
                self._driver.rollback()
        elif commit:
            self._driver.execute(f"RELEASE SAVEPOINT {tx.savepoint}")
        else:
            self._driver.execute(f"ROLLBACK TO SAVEPOINT {tx.savepoint}")
            self._driver.execute(f"RELEASE SAVEPOINT {tx.savepoint}")


class Transaction:
    """A single transaction or savepoint scope.

    ``commit()`` and ``rollback()`` are idempotent once the scope is closed.
    """

    def __init__(self, manager: TransactionManager, savepoint: str | None):
        self._manager = manager
        self.savepoint = savepoint
        self._closed = False
        self.committed = False

    @property
    def is_savepoint(self) -> bool:
        return self.savepoint is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def commit(self) -> None:
        if self._closed:
            return
        self._manager._close(self, commit=True)
        self._closed = True
        self.committed = True

    def rollback(self) -> None:
        if self._closed:
            return
        self._manager._close(self, commit=False)
        self._closed = True

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self._closed:
            self.rollback()

    def __repr__(self) -> str:
        state = "committed" if self.committed else ("rolled back" if self._closed else "open")
        return f"Transaction(savepoint={self.savepoint!r}, {state})"


__all__ = ["Transaction", "TransactionManager"]
