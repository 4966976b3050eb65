import threading


class IdAllocator:
    """
    Source of tensor identities.

    Hands out strictly increasing integers starting at ``start``. The
    increment is guarded by a lock, so tensors built concurrently from
    several threads never receive the same id.

    Parameters
    ----------
    start : int, default=1
        First id returned by :meth:``next_id``.

    Examples
    --------
    >>> ids = IdAllocator()
    >>> ids.next_id(), ids.next_id()
    (1, 2)
    """
    def __init__(self, start: int = 1) -> None:
        self._next = int(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
        return value

    def peek(self) -> int:
        """Return the id the next call to :meth:``next_id`` will hand out."""
        with self._lock:
            return self._next


default_allocator = IdAllocator()
"""IdAllocator: Process-wide allocator used when none is passed explicitly."""
