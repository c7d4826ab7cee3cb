"""Tests for ExpenseSync.core.sync.

The coordinator runs its remote calls inline through ``service.run_synchronous``
against :class:`tests.base.FakeClient`, an in-memory copy of the remote service.
"""
from unittest import mock

from ExpenseSync.core import service
from ExpenseSync.core import storage
from ExpenseSync.core import sync
from ExpenseSync.core.model import Expense, FilterOptions, TimeFrame, is_local_id
from ExpenseSync.core.signals import signals
from ExpenseSync.settings import lib
from ExpenseSync.status import status
from tests.base import BaseTestCase, FakeClient, SignalRecorder, mute_signals


def expense_data(description='Lunch', amount=12.5, category='Food', date='2024-03-01T12:00:00'):
    return {'amount': amount, 'category': category, 'description': description, 'date': date}


class SyncTestCase(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.client = FakeClient()
        self.coordinator = sync.sync

    def go_online(self) -> None:
        self.coordinator.set_client(self.client)
        self.coordinator.set_online(True)

    def stored_ids(self):
        return [e.id for e in storage.storage.get_expenses()]


class OfflineTest(SyncTestCase):

    def test_add_offline_keeps_record_pending(self):
        expense = self.coordinator.add_expense(expense_data())

        self.assertTrue(is_local_id(expense.id))
        self.assertFalse(expense.is_synced)
        self.assertEqual(self.coordinator.reconciliation.pending, [expense])
        self.assertEqual(self.stored_ids(), [expense.id])
        self.assertEqual(self.client.calls, [])

    def test_add_without_client_keeps_record_pending(self):
        self.coordinator.set_online(True)
        expense = self.coordinator.add_expense(expense_data())
        self.assertFalse(expense.is_synced)

    def test_invalid_expense_is_not_stored(self):
        for data in (
                expense_data(amount=0),
                expense_data(amount=-3),
                expense_data(amount='abc'),
                expense_data(category=''),
                expense_data(date='yesterday'),
        ):
            with self.assertRaises(status.ExpenseInvalidException):
                self.coordinator.add_expense(data)
        self.assertEqual(self.coordinator.expenses, [])
        self.assertIsNone(storage.storage.get(storage.Key.Expenses))

    def test_missing_date_defaults_to_now(self):
        expense = self.coordinator.add_expense({'amount': 3, 'category': 'Food'})
        self.assertTrue(expense.date)
        self.assertEqual(expense.description, '')

    def test_storage_failure_rolls_back(self):
        with mock.patch.object(storage.storage, 'set_expenses',
                               side_effect=status.StorageException('disk full')):
            with self.assertRaises(status.StorageException):
                self.coordinator.add_expense(expense_data())
        self.assertEqual(self.coordinator.expenses, [])

    def test_sync_is_skipped_offline(self):
        self.coordinator.set_client(self.client)
        report = self.coordinator.sync_expenses()
        self.assertTrue(report.skipped)
        self.assertEqual(self.client.calls, [])

    def test_load_restores_the_stored_collection(self):
        first = self.coordinator.add_expense(expense_data('one'))
        second = self.coordinator.add_expense(expense_data('two'))

        other = sync.SyncAPI(runner=service.run_synchronous)
        self.assertEqual(other.load(), [first, second])
        self.assertEqual(other.reconciliation.pending, [first, second])

    def test_expenses_changed_is_emitted(self):
        recorder = SignalRecorder(signals.expensesChanged)
        self.addCleanup(recorder.disconnect)

        expense = self.coordinator.add_expense(expense_data())
        self.assertEqual([e.id for e in recorder.calls[-1][0]], [expense.id])


class OnlineTest(SyncTestCase):

    def test_add_online_confirms_record(self):
        self.go_online()
        expense = self.coordinator.add_expense(expense_data())

        self.assertEqual(expense.id, 'srv1')
        self.assertTrue(expense.is_synced)
        self.assertEqual(self.coordinator.reconciliation.pending, [])
        self.assertEqual(storage.storage.get_expenses(), [expense])

    def test_add_online_with_remote_failure_stays_pending(self):
        self.go_online()
        self.client.fail_create.add('Lunch')

        expense = self.coordinator.add_expense(expense_data('Lunch'))
        self.assertFalse(expense.is_synced)
        self.assertEqual(self.coordinator.reconciliation.pending, [expense])
        self.assertEqual(self.stored_ids(), [expense.id])

    def test_going_online_pushes_offline_backlog(self):
        self.coordinator.set_client(self.client)
        for description in ('one', 'two'):
            self.coordinator.add_expense(expense_data(description))

        recorder = SignalRecorder(signals.syncFinished)
        self.addCleanup(recorder.disconnect)

        self.coordinator.set_online(True)

        self.assertEqual(len(recorder), 1)
        report = recorder.calls[0][0]
        self.assertEqual((report.pushed, report.failed, report.fetched), (2, 0, 2))
        self.assertEqual(self.coordinator.reconciliation.pending, [])
        self.assertEqual(sorted(e.description for e in self.coordinator.expenses), ['one', 'two'])
        self.assertTrue(all(e.is_synced for e in storage.storage.get_expenses()))

    def test_offline_expense_gets_server_id_when_back_online(self):
        self.coordinator.set_client(self.client)
        expense = self.coordinator.add_expense({'amount': 25.50, 'category': 'Food', 'date': '2024-03-01'})
        self.assertFalse(self.coordinator.expenses[0].is_synced)

        self.coordinator.set_online(True)

        self.assertEqual(len(self.coordinator.expenses), 1)
        synced = self.coordinator.expenses[0]
        self.assertTrue(synced.is_synced)
        self.assertEqual(synced.id, 'srv1')
        self.assertNotEqual(synced.id, expense.id)
        self.assertEqual((synced.amount, synced.category, synced.date), (25.5, 'Food', '2024-03-01'))

    def test_going_online_without_auto_sync_does_not_sync(self):
        lib.settings.set_section('sync', {'auto_sync': False})
        self.coordinator.set_client(self.client)
        self.coordinator.add_expense(expense_data())

        self.coordinator.set_online(True)
        self.assertEqual(self.client.calls, [])
        self.assertEqual(len(self.coordinator.reconciliation.pending), 1)

    def test_partial_failure_keeps_failed_record_pending(self):
        self.coordinator.set_client(self.client)
        for description in ('one', 'two', 'three'):
            self.coordinator.add_expense(expense_data(description))
        self.client.fail_create.add('two')

        self.coordinator.set_online(True)

        pending = self.coordinator.reconciliation.pending
        self.assertEqual([e.description for e in pending], ['two'])
        self.assertTrue(is_local_id(pending[0].id))
        self.assertEqual(len(self.coordinator.reconciliation.confirmed), 2)
        self.assertEqual(len(self.coordinator.expenses), 3)

        # The next pass retries the failed record only
        self.client.fail_create.clear()
        report = self.coordinator.sync_expenses()

        self.assertEqual((report.pushed, report.failed, report.fetched), (1, 0, 3))
        self.assertEqual(self.coordinator.reconciliation.pending, [])
        self.assertEqual(len(self.client.server), 3)
        self.assertEqual(len(self.coordinator.expenses), 3)

    def test_repeated_sync_is_idempotent(self):
        self.go_online()
        self.coordinator.add_expense(expense_data('one'))
        self.coordinator.add_expense(expense_data('two'))

        first = self.coordinator.sync_expenses()
        before = list(self.coordinator.expenses)
        second = self.coordinator.sync_expenses()

        self.assertEqual(first.pushed, 0)
        self.assertEqual(second.pushed, 0)
        self.assertEqual(second.fetched, 2)
        self.assertEqual(self.coordinator.expenses, before)
        self.assertEqual(len(self.client.remote_calls('create')), 2)

    def test_fetch_failure_keeps_local_records(self):
        self.coordinator.set_client(self.client)
        self.coordinator.add_expense(expense_data('one'))
        self.client.fail_fetch = True

        self.coordinator.set_online(True)

        confirmed = self.coordinator.reconciliation.confirmed
        self.assertEqual([e.id for e in confirmed], ['srv1'])
        self.assertEqual(self.coordinator.reconciliation.pending, [])
        self.assertEqual(self.stored_ids(), ['srv1'])

    def test_sync_adopts_records_from_other_devices(self):
        remote = self.client.create_expense(
            Expense('local-x', 7.0, 'Health', 'Pharmacy', '2024-03-02')
        )
        self.go_online()
        self.assertEqual(self.coordinator.expenses, [remote])
        self.assertEqual(storage.storage.get_expenses(), [remote])

    def test_sync_while_syncing_is_skipped(self):
        self.go_online()
        self.coordinator._syncing = True
        self.assertTrue(self.coordinator.sync_expenses().skipped)

    def test_session_change_attaches_client(self):
        with mock.patch('ExpenseSync.core.auth.auth_manager') as manager:
            manager.client.return_value = self.client
            self.coordinator.on_session_changed(object())
        self.assertIs(self.coordinator.client, self.client)

        self.coordinator.on_session_changed(None)
        self.assertIsNone(self.coordinator.client)


class UpdateDeleteTest(SyncTestCase):

    def test_delete_unknown_id_is_a_noop(self):
        self.go_online()
        self.coordinator.add_expense(expense_data())
        self.client.calls.clear()

        with mute_signals():
            self.assertFalse(self.coordinator.delete_expense('abc'))

        self.assertEqual(len(self.coordinator.expenses), 1)
        self.assertEqual(len(storage.storage.get_expenses()), 1)
        self.assertEqual(self.client.calls, [])

    def test_delete_pending_record_makes_no_remote_call(self):
        self.client.fail_create.add('Lunch')
        expense = self.coordinator.add_expense(expense_data('Lunch'))
        self.go_online()
        self.assertFalse(self.coordinator.expenses[0].is_synced)
        self.client.calls.clear()

        self.assertTrue(self.coordinator.delete_expense(expense.id))
        self.assertEqual(self.coordinator.expenses, [])
        self.assertEqual(storage.storage.get_expenses(), [])
        self.assertEqual(self.client.calls, [])

    def test_delete_confirmed_record_online(self):
        self.go_online()
        expense = self.coordinator.add_expense(expense_data())

        self.assertTrue(self.coordinator.delete_expense(expense.id))
        self.assertEqual(self.client.remote_calls('delete'), [('delete', expense.id)])
        self.assertEqual(self.client.server, {})
        self.assertEqual(storage.storage.get_expenses(), [])

    def test_delete_confirmed_record_remote_failure_still_removes_locally(self):
        self.go_online()
        expense = self.coordinator.add_expense(expense_data())
        self.client.server.clear()

        self.assertTrue(self.coordinator.delete_expense(expense.id))
        self.assertEqual(self.coordinator.expenses, [])

    def test_update_pending_record(self):
        expense = self.coordinator.add_expense(expense_data())
        updated = self.coordinator.update_expense(expense.id, {'amount': '20', 'description': 'Dinner'})

        self.assertEqual(updated.id, expense.id)
        self.assertEqual(updated.amount, 20.0)
        self.assertEqual(updated.description, 'Dinner')
        self.assertEqual(updated.category, 'Food')
        self.assertEqual(storage.storage.get_expenses(), [updated])

    def test_update_confirmed_record_online(self):
        self.go_online()
        expense = self.coordinator.add_expense(expense_data())

        updated = self.coordinator.update_expense(expense.id, {'category': 'Shopping'})

        self.assertEqual(updated.category, 'Shopping')
        self.assertTrue(updated.is_synced)
        self.assertEqual(self.client.remote_calls('update'), [('update', expense.id, updated.payload())])
        self.assertEqual(self.client.server[expense.id].category, 'Shopping')

    def test_update_unknown_id_returns_none(self):
        self.assertIsNone(self.coordinator.update_expense('abc', {'amount': 3}))

    def test_update_rejects_invalid_fields(self):
        expense = self.coordinator.add_expense(expense_data())
        with self.assertRaises(status.ExpenseInvalidException):
            self.coordinator.update_expense(expense.id, {'amount': 0})
        self.assertEqual(self.coordinator.expenses, [expense])


class InFlightTest(SyncTestCase):
    """Local events that arrive while a remote create is waiting for its response."""

    def setUp(self) -> None:
        super().setUp()
        self.during_create = None
        self.coordinator = sync.sync = sync.SyncAPI(runner=self.run_remote)
        lib.settings.set_section('sync', {'auto_sync': False})
        self.coordinator.set_client(self.client)

    def run_remote(self, func, *args):
        result = service.run_synchronous(func, *args)
        if func.__name__ == 'create_expense' and self.during_create is not None:
            event, self.during_create = self.during_create, None
            event()
        return result

    def add_offline(self, *descriptions):
        expenses = [self.coordinator.add_expense(expense_data(d, amount=5.0)) for d in descriptions]
        self.coordinator.set_online(True)
        return expenses

    def test_signing_out_stops_the_pass(self):
        self.add_offline('one', 'two')
        self.during_create = lambda: self.coordinator.set_client(None)

        report = self.coordinator.sync_expenses()

        self.assertEqual((report.pushed, report.failed, report.fetched), (1, 0, None))
        self.assertEqual(len(self.client.remote_calls('create')), 1)
        self.assertEqual(self.client.remote_calls('fetch'), [])
        self.assertEqual([e.description for e in self.coordinator.reconciliation.confirmed], ['one'])
        self.assertEqual([e.description for e in self.coordinator.reconciliation.pending], ['two'])
        self.assertEqual(len(storage.storage.get_expenses()), 2)

    def test_switching_accounts_syncs_the_rest_with_the_new_session(self):
        self.add_offline('one', 'two')
        other = FakeClient()
        self.during_create = lambda: self.coordinator.set_client(other)

        self.coordinator.sync_expenses()

        self.assertEqual([e.description for e in self.client.server.values()], ['one'])
        self.assertEqual([e.description for e in other.server.values()], ['two'])
        self.assertEqual([e.description for e in self.coordinator.expenses], ['two'])
        self.assertEqual(self.coordinator.reconciliation.pending, [])

    def test_going_offline_stops_the_pass(self):
        self.add_offline('one', 'two')
        self.during_create = lambda: self.coordinator.set_online(False)

        report = self.coordinator.sync_expenses()

        self.assertEqual(report.pushed, 1)
        self.assertIsNone(report.fetched)
        self.assertEqual(len(self.coordinator.reconciliation.pending), 1)

    def test_record_deleted_before_its_turn_is_not_pushed(self):
        a, b = self.add_offline('a', 'b')
        self.during_create = lambda: self.coordinator.delete_expense(b.id)

        report = self.coordinator.sync_expenses()

        self.assertEqual((report.pushed, report.failed), (1, 0))
        self.assertEqual(self.client.remote_calls('create'), [('create', a.id)])
        self.assertEqual([e.description for e in self.coordinator.expenses], ['a'])
        self.assertEqual([e.description for e in storage.storage.get_expenses()], ['a'])

    def test_record_deleted_during_its_own_push_is_deleted_remotely(self):
        a, = self.add_offline('a')
        self.during_create = lambda: self.coordinator.delete_expense(a.id)

        report = self.coordinator.sync_expenses()

        self.assertEqual((report.pushed, report.failed, report.fetched), (0, 0, 0))
        self.assertEqual(self.client.remote_calls('delete'), [('delete', 'srv1')])
        self.assertEqual(self.client.server, {})
        self.assertEqual(self.coordinator.expenses, [])
        self.assertEqual(storage.storage.get_expenses(), [])

    def test_edit_during_a_push_is_sent_as_an_update(self):
        a, = self.add_offline('a')
        self.during_create = lambda: self.coordinator.update_expense(a.id, {'amount': 99.0})

        self.coordinator.sync_expenses()

        self.assertEqual([e.amount for e in self.coordinator.expenses], [99.0])
        self.assertEqual([e.amount for e in storage.storage.get_expenses()], [99.0])
        self.assertEqual(self.client.server['srv1'].amount, 99.0)
        updates = self.client.remote_calls('update')
        self.assertEqual(len(updates), 1)
        self.assertEqual(updates[0][1], 'srv1')
        self.assertEqual(updates[0][2]['amount'], 99.0)

    def test_edit_during_an_online_add_is_kept(self):
        self.coordinator.set_online(True)

        def edit():
            pending = self.coordinator.reconciliation.pending[0]
            self.coordinator.update_expense(pending.id, {'description': 'Dinner'})

        self.during_create = edit
        expense = self.coordinator.add_expense(expense_data('Lunch'))

        self.assertEqual((expense.id, expense.description), ('srv1', 'Dinner'))
        self.assertTrue(expense.is_synced)
        self.assertEqual(self.client.server['srv1'].description, 'Dinner')
        self.assertEqual(storage.storage.get_expenses(), [expense])


class QueryTest(SyncTestCase):

    def test_filter_and_summary(self):
        self.coordinator.add_expense(expense_data('Lunch', 10.0, 'Food'))
        self.coordinator.add_expense(expense_data('Bus', 2.5, 'Transportation'))

        result = self.coordinator.filter_expenses(FilterOptions(categories=['Food']))
        self.assertEqual([e.description for e in result], ['Lunch'])

        summary = self.coordinator.get_summary(TimeFrame.Year)
        self.assertAlmostEqual(sum(summary.category_breakdown.values()), summary.total_amount)
