"""
Bus de eventos de dominio en memoria.

Las transiciones de reserva publican `BookingStatusChanged` después del commit.
Notificaciones (email/SMS) y cobros se suscriben desde fuera; un suscriptor que
falla se loguea y no afecta a la transición ya confirmada.
"""
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Callable, List, Optional

from app.core.logging import get_logger

logger = get_logger(module="events")


@dataclass(frozen=True)
class BookingStatusChanged:
    booking_reference: str
    old_status: Optional[str]
    new_status: str
    timestamp: datetime
    tenant_id: Optional[str] = None


Subscriber = Callable[[BookingStatusChanged], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = RLock()

    def subscribe(self, handler: Subscriber) -> None:
        with self._lock:
            if handler not in self._subscribers:
                self._subscribers.append(handler)

    def unsubscribe(self, handler: Subscriber) -> None:
        with self._lock:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def publish(self, event: BookingStatusChanged) -> None:
        with self._lock:
            handlers = list(self._subscribers)

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Suscriptor de eventos falló",
                    booking_reference=event.booking_reference,
                    new_status=event.new_status,
                    handler=getattr(handler, "__name__", repr(handler)),
                )

        logger.info(
            "Evento de reserva publicado",
            booking_reference=event.booking_reference,
            old_status=event.old_status,
            new_status=event.new_status,
            subscribers=len(handlers),
        )


event_bus = EventBus()
