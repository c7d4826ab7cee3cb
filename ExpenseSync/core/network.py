"""Network reachability listener.

Wraps ``QtNetwork.QNetworkInformation`` and reports plain online/offline
transitions. When the platform offers no reachability backend the monitor
assumes the device is online; failed remote calls then keep records pending.
"""
import logging
from typing import Optional

from PySide6 import QtCore, QtNetwork


def _is_online(reachability) -> bool:
    r = QtNetwork.QNetworkInformation.Reachability
    # Unknown means the backend can't tell, don't block syncing on it
    return reachability in (r.Online, r.Unknown)


class NetworkMonitor(QtCore.QObject):
    """
    Emits reachability transitions.

    Signals:
        reachabilityChanged (bool): Emitted with True when the device goes online
            and False when it goes offline.
    """
    reachabilityChanged = QtCore.Signal(bool)

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self._online: bool = True
        self._info = None

    @property
    def is_online(self) -> bool:
        return self._online

    def start(self) -> bool:
        """Attach to the platform's reachability backend.

        Returns:
            bool: The current online state.
        """
        info_cls = QtNetwork.QNetworkInformation
        if not info_cls.loadDefaultBackend():
            logging.warning('No network information backend available, assuming online.')
            self._online = True
            return self._online

        self._info = info_cls.instance()
        logging.debug(f'Using network information backend "{self._info.backendName()}"')
        self._info.reachabilityChanged.connect(self.on_reachability_changed)
        self._online = _is_online(self._info.reachability())
        return self._online

    @QtCore.Slot(object)
    def on_reachability_changed(self, reachability) -> None:
        self.set_online(_is_online(reachability))

    def set_online(self, online: bool) -> None:
        """Record the online state and announce a transition."""
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        logging.info(f'Network is now {"online" if online else "offline"}')
        self.reachabilityChanged.emit(online)

        from .signals import signals
        signals.connectivityChanged.emit(online)
