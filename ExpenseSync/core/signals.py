"""Application-wide Qt signals for ExpenseSync.

The presentation layer connects to these signals to re-render when the
expense collection, the session or the connectivity state changes.
"""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for session, data and sync events."""
    sessionChanged = QtCore.Signal(object)  # AuthSession or None

    expensesChanged = QtCore.Signal(list)
    categoriesChanged = QtCore.Signal(list)

    connectivityChanged = QtCore.Signal(bool)

    syncStarted = QtCore.Signal()
    syncFinished = QtCore.Signal(object)  # SyncReport

    backupRestored = QtCore.Signal(str)

    configSectionChanged = QtCore.Signal(str)
    metadataChanged = QtCore.Signal(str, object)

    error = QtCore.Signal(str)
    errorLogged = QtCore.Signal(str)

    def __init__(self):
        super().__init__()


signals = Signals()
