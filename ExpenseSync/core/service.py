"""Asynchronous execution of blocking remote calls.

Remote calls run on an :class:`AsyncWorker` thread while a local
``QEventLoop`` keeps the caller's event loop responsive. Completion is
delivered back on the calling thread, so the expense collection is only ever
mutated from one thread.

Both runners return a :class:`Result` and never raise for errors raised by
the called function.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from PySide6 import QtCore

from ..status import status

TOTAL_TIMEOUT: int = 30


@dataclass
class Result:
    """Outcome of a remote call: a value or the error that prevented it."""
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _capture(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Result:
    try:
        return Result(value=func(*args, **kwargs))
    except status.BaseStatusException as ex:
        return Result(error=ex)
    except Exception as ex:
        logging.error(f'Unexpected error in {getattr(func, "__name__", func)}: {ex}', exc_info=True)
        return Result(error=ex)


class AsyncWorker(QtCore.QThread):
    """
    Worker thread running one blocking function.

    Signals:
        resultReady (object): Emitted with the function's :class:`Result`.
    """
    resultReady = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        self.resultReady.emit(_capture(self.func, *self.args, **self.kwargs))


def run_synchronous(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Result:
    """Run func inline on the calling thread and capture its outcome.

    Returns:
        Result: The captured value or error.
    """
    return _capture(func, *args, **kwargs)


def start_asynchronous(func: Callable[..., Any], *args: Any, total_timeout: int = TOTAL_TIMEOUT,
                       **kwargs: Any) -> Result:
    """
    Run func on a worker thread and wait for it in a nested event loop.

    Falls back to :func:`run_synchronous` when no Qt application exists.

    Args:
        func: The blocking function to run.
        *args, **kwargs: Arguments passed to func.
        total_timeout (int): Seconds to wait before giving up.

    Returns:
        Result: The function's value, or its error. A timeout yields a
        ``ServiceUnavailableException`` error.
    """
    if QtCore.QCoreApplication.instance() is None:
        logging.debug('No Qt application instance, running the call inline.')
        return run_synchronous(func, *args, **kwargs)

    worker: AsyncWorker = AsyncWorker(func, *args, **kwargs)

    result: dict = {'result': None}
    loop: QtCore.QEventLoop = QtCore.QEventLoop()

    worker.resultReady.connect(
        lambda r: (result.update({'result': r}), loop.quit()),
        QtCore.Qt.QueuedConnection
    )

    timer: QtCore.QTimer = QtCore.QTimer()
    timer.setSingleShot(True)
    timer.setInterval(total_timeout * 1000)
    timer.timeout.connect(loop.quit)

    worker.start()
    timer.start()
    loop.exec()
    timer.stop()

    if result['result'] is None:
        if worker.isRunning():
            worker.terminate()
        worker.wait()
        return Result(error=status.ServiceUnavailableException(
            f'Operation timed out after {total_timeout} seconds.'
        ))

    worker.wait()
    return result['result']
