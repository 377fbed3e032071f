import threading


class ReadinessFlag:
    """
    Set once, after the first JWT SVID has been fetched and written.

    One writer (the renewal loop), any number of readers (the health endpoint).
    The transition is one-way: there is no way to clear the flag.
    """

    def __init__(self):
        self._event = threading.Event()

    def mark_ready(self) -> None:
        self._event.set()

    def is_ready(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"ReadinessFlag(ready={self.is_ready()})"
