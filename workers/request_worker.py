import logging
from typing import Any, Callable, Optional
from PySide6 import QtCore
from handlers.dispatcher import dispatch

logger = logging.getLogger(__name__)


class WorkerSignals(QtCore.QObject):
    """
    Defines the signals available from a running worker thread.

    Attributes:
        finished (dict): Emitted with the dispatch response ({"ok": ..., ...}).
        error (str): Emitted with an error message if the handler crashed.
    """
    finished = QtCore.Signal(dict)
    error = QtCore.Signal(str)


class RequestWorker(QtCore.QRunnable):
    """
    Background worker that runs one channel request.
    Prevents the UI from freezing during database work.
    """
    def __init__(self, channel: str, *args: Any, actor_id: Optional[str] = None, **kwargs: Any):
        super().__init__()
        self.channel = channel
        self.args = args
        self.kwargs = kwargs
        self.actor_id = actor_id
        self.signals = WorkerSignals()

    @QtCore.Slot()
    def run(self) -> None:
        try:
            response = dispatch(self.channel, *self.args, actor_id=self.actor_id, **self.kwargs)
            self.signals.finished.emit(response)
        except Exception as e:
            logger.exception("Request %s failed", self.channel)
            self.signals.error.emit(str(e))


def submit(channel: str, *args: Any, on_finished: Optional[Callable[[dict], None]] = None,
           on_error: Optional[Callable[[str], None]] = None, actor_id: Optional[str] = None,
           **kwargs: Any) -> RequestWorker:
    """Queues a request on the global thread pool and returns its worker."""
    worker = RequestWorker(channel, *args, actor_id=actor_id, **kwargs)
    if on_finished:
        worker.signals.finished.connect(on_finished)
    if on_error:
        worker.signals.error.connect(on_error)
    QtCore.QThreadPool.globalInstance().start(worker)
    return worker
