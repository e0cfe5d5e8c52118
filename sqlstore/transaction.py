import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from .errors import TransactionError

logger = logging.getLogger(__name__)


class Transaction:
    """One database transaction, bound to a pooled connection for its whole life.

    Work done by the persistence layer registers callbacks: ``on_commit``
    callbacks publish new state (key ids, cache rows) once the database has
    accepted it, ``on_rollback`` callbacks restore in-memory entities.
    """

    def __init__(self, connection, manager: "TransactionManager", implicit: bool = False):
        self.connection = connection
        self.manager = manager
        self.implicit = implicit
        self.active = True
        self.loaded_keys: set = set()
        """Keys whose rows were read through this transaction."""
        self.written: set = set()
        """Keys whose rows were inserted, updated or deleted by this transaction."""
        self._commit_callbacks: list[Callable[[], None]] = []
        self._rollback_callbacks: list[Callable[[], None]] = []

    def execute(self, sql: str, parameters: tuple | list = ()):
        if not self.active:
            raise TransactionError("Transaction is no longer active")
        return self.connection.execute(sql, parameters)

    def on_commit(self, callback: Callable[[], None]) -> None:
        self._commit_callbacks.append(callback)

    def on_rollback(self, callback: Callable[[], None]) -> None:
        self._rollback_callbacks.append(callback)

    def __repr__(self) -> str:
        kind = "implicit" if self.implicit else "explicit"
        state = "active" if self.active else "finished"
        return f"<Transaction {kind} {state}>"


class TransactionManager:
    """Per-thread transactions over connections from ``connection_factory``.

    There is at most one open transaction per thread; nesting is not supported.
    """

    def __init__(self, connection_factory: Callable[[], Any], on_rollback: Optional[Callable[[Transaction], None]] = None):
        """
        Args:
            connection_factory: Returns a pooled connection; it is released
                when the transaction ends.
            on_rollback: Called with every transaction that was rolled back,
                after its own rollback callbacks.
        """
        self._connection_factory = connection_factory
        self._after_rollback = on_rollback
        self._local = threading.local()

    def current(self) -> Optional[Transaction]:
        return getattr(self._local, "transaction", None)

    def begin(self, implicit: bool = False) -> Transaction:
        if self.current() is not None:
            raise TransactionError("A transaction is already open in this thread")
        transaction = Transaction(self._connection_factory(), self, implicit)
        self._local.transaction = transaction
        return transaction

    def _finish(self) -> Transaction:
        transaction = self.current()
        if transaction is None:
            raise TransactionError("No transaction is open in this thread")
        self._local.transaction = None
        transaction.active = False
        return transaction

    def commit(self) -> None:
        transaction = self.current()
        if transaction is None:
            raise TransactionError("No transaction is open in this thread")
        try:
            transaction.connection.commit()
        except BaseException:
            self.rollback()
            raise
        self._finish()
        transaction.connection.release()
        for callback in transaction._commit_callbacks:
            callback()

    def rollback(self) -> None:
        transaction = self._finish()
        try:
            transaction.connection.rollback()
        except Exception:  # pylint: disable=broad-except
            logger.warning("Rollback failed", exc_info=True)
        finally:
            transaction.connection.release()
        for callback in reversed(transaction._rollback_callbacks):
            callback()
        if self._after_rollback is not None:
            self._after_rollback(transaction)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Explicit transaction: committed on normal exit, rolled back on exception."""
        transaction = self.begin()
        try:
            yield transaction
        except BaseException:
            if transaction.active:
                self.rollback()
            raise
        if transaction.active:
            self.commit()

    @contextmanager
    def unit(self) -> Iterator[Transaction]:
        """Run a unit of work in the current transaction, or in an implicit one.

        Any exception rolls back the whole enclosing transaction, explicit or not.
        """
        transaction = self.current()
        implicit = transaction is None
        if implicit:
            transaction = self.begin(implicit=True)
        try:
            yield transaction
        except BaseException:
            if transaction.active:
                self.rollback()
            raise
        if implicit and transaction.active:
            self.commit()
