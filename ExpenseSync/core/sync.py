"""Sync coordinator between the local store and the remote expense service.

The coordinator is the only component that reconciles the on-device copy of
the expense collection with the per-user copy held by the remote service:

- Every mutation is persisted locally before any remote call is attempted, so
  an expense entered offline is never lost.
- Records the service has not confirmed yet are kept ``pending`` with a local
  id and ``isSynced=False``. Confirmed records carry the service id.
- A sync pass pushes the pending backlog one record at a time, then replaces
  the confirmed set with the service's collection. Records that failed to push
  stay pending and are retried on the next pass.

Remote failures are logged and never raised to the caller. Local persistence
failures raise :class:`~ExpenseSync.status.status.StorageException`.
"""
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from PySide6 import QtCore

from . import service
from . import storage
from .client import ApiClient
from .model import (
    Expense, ExpenseSummary, FilterOptions, Reconciliation, SyncReport, TimeFrame,
    new_local_id, validate_expense_data
)
from ..status import status


class SyncAPI(QtCore.QObject):
    """Keeps the local expense collection and the remote collection eventually consistent.

    Args:
        runner: Callable used to run remote calls. It receives the function and
            its arguments and returns a :class:`~ExpenseSync.core.service.Result`.
            Defaults to :func:`~ExpenseSync.core.service.start_asynchronous`.
    """

    def __init__(self, runner: Optional[Callable[..., service.Result]] = None,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._reconciliation: Reconciliation = Reconciliation()
        self._online: bool = False
        self._client: Optional[ApiClient] = None
        self._runner = runner
        self._syncing: bool = False

        self._connect_signals()

    def _connect_signals(self) -> None:
        from .signals import signals

        signals.sessionChanged.connect(self.on_session_changed)

    @property
    def expenses(self) -> List[Expense]:
        """The combined collection: confirmed records followed by pending ones."""
        return self._reconciliation.expenses

    @property
    def reconciliation(self) -> Reconciliation:
        return self._reconciliation

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def client(self) -> Optional[ApiClient]:
        return self._client

    def _can_reach_remote(self) -> bool:
        return self._online and self._client is not None

    def _call(self, func: Callable[..., Any], *args: Any) -> service.Result:
        runner = self._runner or service.start_asynchronous
        return runner(func, *args)

    def _persist(self) -> None:
        """Write the collection to the local store and announce it.

        Raises:
            status.StorageException: If the store cannot be written.
        """
        expenses = self._reconciliation.expenses
        storage.storage.set_expenses(expenses)

        from .signals import signals
        signals.expensesChanged.emit(expenses)

    def _persist_after_remote(self) -> None:
        # The triggering operation already succeeded locally; the next write catches up
        try:
            self._persist()
        except status.StorageException as ex:
            logging.error(f'Could not persist the collection after a remote update: {ex}')

    def load(self) -> List[Expense]:
        """Reload the collection from the local store.

        A sync pass follows when a client is attached and the device is online.

        Returns:
            list[Expense]: The loaded collection.
        """
        self._reconciliation = Reconciliation.from_expenses(storage.storage.get_expenses())
        logging.debug(
            f'Loaded {len(self._reconciliation.confirmed)} confirmed and '
            f'{len(self._reconciliation.pending)} pending expense(s)'
        )

        from .signals import signals
        signals.expensesChanged.emit(self.expenses)

        if self._can_reach_remote():
            self.sync_expenses()
        return self.expenses

    def set_client(self, client: Optional[ApiClient]) -> None:
        """Attach the API client of the current session, or detach it with None."""
        self._client = client
        logging.debug(f'Sync client set to {client!r}')
        if self._can_reach_remote():
            self.sync_expenses()

    @QtCore.Slot(object)
    def on_session_changed(self, session) -> None:
        if session is None:
            self.set_client(None)
            return

        from .auth import auth_manager, AuthExpiredError
        try:
            self.set_client(auth_manager.client())
        except AuthExpiredError as ex:
            logging.warning(f'Session changed but no client is available: {ex}')
            self.set_client(None)

    @QtCore.Slot(bool)
    def set_online(self, online: bool) -> None:
        """Record connectivity. Going online starts a sync pass when auto-sync is enabled."""
        was_online = self._online
        self._online = bool(online)
        if self._online == was_online:
            return

        logging.info(f'Sync coordinator is now {"online" if self._online else "offline"}')
        if not self._online:
            return

        from ..settings import lib
        if lib.settings.auto_sync:
            self.sync_expenses()

    def add_expense(self, data: Dict[str, Any]) -> Expense:
        """Create an expense, persist it locally, then try to confirm it remotely.

        Args:
            data: ``amount``, ``category``, ``description`` and ``date``.

        Returns:
            Expense: The stored record. It carries the service id and
            ``is_synced=True`` when the remote create succeeded.

        Raises:
            status.ExpenseInvalidException: If the input is invalid. Nothing is stored.
            status.StorageException: If the local store cannot be written.
        """
        fields = validate_expense_data(data)
        expense = Expense(id=new_local_id(), is_synced=False, **fields)

        self._reconciliation.pending.append(expense)
        try:
            self._persist()
        except status.StorageException:
            self._reconciliation.pending.remove(expense)
            raise
        logging.info(f'Added expense {expense.id} ({expense.category}, {expense.amount:.2f})')

        if not self._can_reach_remote():
            return expense

        confirmed = self._push(expense, self._client)
        if confirmed is None:
            return expense
        self._persist_after_remote()
        return confirmed

    def _pending_index(self, expense_id: str) -> Optional[int]:
        return next((i for i, e in enumerate(self._reconciliation.pending) if e.id == expense_id), None)

    def _push(self, expense: Expense, client: ApiClient) -> Optional[Expense]:
        """Create one pending record remotely and move it to the confirmed set.

        Other events run while the request is in flight. A record deleted in
        the meantime is deleted remotely too, and local edits made in the
        meantime are sent as a follow-up update.

        Returns:
            The confirmed record, or None if the record was not confirmed.
        """
        result = self._call(client.create_expense, expense)
        if not result.ok:
            logging.warning(f'Could not push expense {expense.id}: {result.error}')
            return None

        created: Expense = result.value
        index = self._pending_index(expense.id)
        if index is None:
            logging.warning(f'Expense {expense.id} was removed while being pushed, deleting {created.id} remotely.')
            result = self._call(client.delete_expense, created.id)
            if not result.ok:
                logging.warning(f'Could not delete expense {created.id} remotely: {result.error}')
            return None

        current = self._reconciliation.pending.pop(index)
        if current.payload() == expense.payload():
            confirmed = created
        else:
            confirmed = replace(current.confirmed(created.id), user_id=created.user_id)
        self._reconciliation.confirmed.append(confirmed)
        logging.debug(f'Expense {expense.id} confirmed as {confirmed.id}')

        if confirmed is not created:
            logging.debug(f'Expense {expense.id} was edited while being pushed, sending the local values.')
            result = self._call(client.update_expense, confirmed.id, confirmed.payload())
            if not result.ok:
                logging.warning(f'Could not update expense {confirmed.id} remotely: {result.error}')
        return confirmed

    def update_expense(self, expense_id: str, changes: Dict[str, Any]) -> Optional[Expense]:
        """Apply partial changes to an expense.

        A pending record stays pending and is pushed with its new values on the
        next sync. A confirmed record is also updated remotely when online.

        Returns:
            The updated record, or None if no expense has this id.

        Raises:
            status.ExpenseInvalidException: If a changed field is invalid.
            status.StorageException: If the local store cannot be written.
        """
        fields = validate_expense_data(changes, partial=True)

        for collection in (self._reconciliation.confirmed, self._reconciliation.pending):
            for i, expense in enumerate(collection):
                if expense.id != expense_id:
                    continue

                updated = replace(expense, **fields)
                collection[i] = updated
                try:
                    self._persist()
                except status.StorageException:
                    collection[i] = expense
                    raise

                if updated.is_synced and fields and self._can_reach_remote():
                    result = self._call(self._client.update_expense, expense_id, updated.payload())
                    if result.ok:
                        logging.debug(f'Expense {expense_id} updated remotely')
                    else:
                        logging.warning(f'Could not update expense {expense_id} remotely: {result.error}')
                return updated

        logging.debug(f'Update ignored, no expense with id {expense_id}')
        return None

    def delete_expense(self, expense_id: str) -> bool:
        """Remove an expense locally, then remotely if it was confirmed.

        An unknown id is a no-op: nothing is persisted and no remote call is made.

        Returns:
            bool: True if a record was removed.

        Raises:
            status.StorageException: If the local store cannot be written.
        """
        for collection in (self._reconciliation.confirmed, self._reconciliation.pending):
            for i, expense in enumerate(collection):
                if expense.id != expense_id:
                    continue

                del collection[i]
                try:
                    self._persist()
                except status.StorageException:
                    collection.insert(i, expense)
                    raise
                logging.info(f'Deleted expense {expense_id}')

                if expense.is_synced and self._can_reach_remote():
                    result = self._call(self._client.delete_expense, expense_id)
                    if not result.ok:
                        logging.warning(f'Could not delete expense {expense_id} remotely: {result.error}')
                return True

        logging.debug(f'Delete ignored, no expense with id {expense_id}')
        return False

    def sync_expenses(self) -> SyncReport:
        """Push the pending backlog, then adopt the service's collection.

        Does nothing unless online with a client attached. Each pending record is
        pushed in turn with its current values; a failure leaves that record
        pending and the pass continues, and records deleted meanwhile are
        skipped. The confirmed set is then replaced by the service's records.
        If that fetch fails, the confirmed set is kept as it was plus the records
        pushed during this pass.

        Going offline or a session change stops the pass. When a new session is
        attached by then, a new pass starts for it.

        Returns:
            SyncReport: Counts of pushed, failed and fetched records.
        """
        if not self._can_reach_remote():
            logging.debug('Sync skipped, offline or signed out.')
            return SyncReport(skipped=True)
        if self._syncing:
            logging.debug('Sync skipped, a sync pass is already running.')
            return SyncReport(skipped=True)

        from .signals import signals

        client = self._client

        def interrupted() -> bool:
            return not self._online or self._client is not client

        self._syncing = True
        signals.syncStarted.emit()
        report = SyncReport()
        try:
            backlog = [e.id for e in self._reconciliation.pending]
            logging.info(f'Syncing: {len(backlog)} pending expense(s) to push')

            for expense_id in backlog:
                if interrupted():
                    break
                index = self._pending_index(expense_id)
                if index is None:
                    logging.debug(f'Expense {expense_id} was removed before it was pushed.')
                    continue

                if self._push(self._reconciliation.pending[index], client) is not None:
                    report.pushed += 1
                elif self._pending_index(expense_id) is not None:
                    report.failed += 1

            result = None if interrupted() else self._call(client.get_expenses)
            if interrupted():
                logging.warning('Sync interrupted by a session or connectivity change.')
            elif result.ok:
                server_expenses = [replace(e, is_synced=True) for e in result.value]
                self._reconciliation = Reconciliation(
                    confirmed=server_expenses,
                    pending=list(self._reconciliation.pending),
                )
                report.fetched = len(server_expenses)
            else:
                logging.warning(f'Could not fetch the remote collection: {result.error}')

            self._persist_after_remote()
        finally:
            self._syncing = False

        logging.info(
            f'Sync finished: {report.pushed} pushed, {report.failed} failed, '
            f'{report.fetched if report.fetched is not None else "no"} fetched'
        )
        signals.syncFinished.emit(report)

        if self._client is not client and self._can_reach_remote():
            self.sync_expenses()
        return report

    def filter_expenses(self, options: Optional[FilterOptions]) -> List[Expense]:
        from ..data import data
        return data.filter_expenses(self.expenses, options)

    def get_summary(self, time_frame: TimeFrame) -> ExpenseSummary:
        from ..data import data
        return data.get_expense_summary(self.expenses, time_frame)


sync: SyncAPI = SyncAPI()
