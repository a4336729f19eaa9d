import threading

from edgeinstall.kernel.errors import RunCancelled


class CancellationToken:
    """
    Cooperative cancellation flag shared by the pipeline and its stages.
    Checked at every stage boundary and between download chunks.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise RunCancelled(stage)
