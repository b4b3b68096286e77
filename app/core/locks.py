from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator


class KeyedLocks:
    """
    Un lock por clave (id de reserva, id de vehículo) dentro del proceso.
    La entrada se borra cuando nadie la usa, así el mapa no crece con cada reserva.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[str, RLock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = RLock()
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def acquire(self, key: str) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._checkin(key)


booking_locks = KeyedLocks()
vehicle_locks = KeyedLocks()
