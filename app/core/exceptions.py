from __future__ import annotations

from typing import Optional


class FreightError(Exception):
    """Base de todos los errores de dominio del núcleo de reservas."""

    # Código HTTP equivalente, lo usa el handler de app.main
    status_code = 400

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidRequestError(FreightError):
    """Datos de entrada mal formados o con valores imposibles."""

    status_code = 422


class UnsupportedUnitError(InvalidRequestError):
    """Unidad de carga no reconocida por el calculador."""

    def __init__(self, unit: str) -> None:
        super().__init__(f"Unsupported cargo unit: {unit!r}", unit=unit)
        self.unit = unit


class NotFound(FreightError):
    status_code = 404


class NoConfigAvailable(NotFound):
    """No hay ninguna tarifa con effective_from <= instante pedido."""


class ConfigNotFound(NotFound):
    """Búsqueda exacta (name, version) sin resultado."""


class ImmutableConfigError(FreightError):
    """Intento de modificar una versión de tarifa ya publicada."""

    status_code = 409


class CapacityExceeded(FreightError):
    status_code = 409


class SchedulingConflict(FreightError):
    status_code = 409


class VehicleUnavailable(FreightError):
    status_code = 409


class IllegalTransitionError(FreightError):
    """Transición de estado no permitida por la máquina de estados."""

    status_code = 409

    def __init__(
        self,
        current: Optional[str],
        target: str,
        reason: Optional[str] = None,
    ) -> None:
        message = f"Illegal booking transition: {current} -> {target}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, current=current, target=target)
        self.current = current
        self.target = target


class ConflictError(FreightError):
    """Choca con lo ya guardado: escritura concurrente o clave duplicada."""

    status_code = 409
