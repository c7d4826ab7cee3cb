"""
ExpenseSync: offline-first personal expense tracking with a REST sync service.

This package provides:

- :mod:`ExpenseSync.core` – Local store, remote client, session management and the sync coordinator.
- :mod:`ExpenseSync.data` – Filter and summary engine, CSV export and backups.
- :mod:`ExpenseSync.settings` – Client settings and locale formatting.
- :mod:`ExpenseSync.server` – FastAPI service persisting expenses per user in MongoDB.
- :mod:`ExpenseSync.log` – Logging setup with an in-memory log tank.

Use :func:`ExpenseSync.exec_` to run the headless client and
:func:`ExpenseSync.server.main.run` to serve the API.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('ExpenseSync requires Python 3.11 or higher.')

__version__ = '1.0.0'
__description__ = 'ExpenseSync: offline-first expense tracker with a REST sync service.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Start the headless client and enter the Qt event loop.

    Restores the stored session, loads the local collection and keeps it in
    sync whenever the network is reachable.
    """
    from .core import auth
    from .core import network
    from .core import sync

    app = QtCore.QCoreApplication(sys.argv)

    monitor = network.NetworkMonitor(parent=app)
    monitor.reachabilityChanged.connect(sync.sync.set_online)

    def _start():
        auth.auth_manager.restore()
        sync.sync.load()
        sync.sync.set_online(monitor.start())

    QtCore.QTimer.singleShot(0, _start)

    sys.exit(app.exec())


if __name__ == '__main__':
    exec_()
