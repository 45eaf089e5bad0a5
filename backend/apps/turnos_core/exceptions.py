# apps/turnos_core/exceptions.py
# ------------------------------------------------------------------------------
# Errores de dominio del motor de turnos.
# - Cada error lleva un status HTTP y un `detalle` (dict) para que la capa API
#   pueda explicarle al usuario qué pasó (turno afectado, cantidades, etc.).
# - La capa API los traduce en apps.common.exceptions.turnos_exception_handler.
# ------------------------------------------------------------------------------


class TurnosError(Exception):
    """Base de los errores del motor de turnos."""

    status_code = 400
    codigo = "error_turnos"

    def __init__(self, mensaje, *, detalle=None):
        super().__init__(mensaje)
        self.mensaje = mensaje
        self.detalle = dict(detalle or {})

    def as_dict(self):
        return {"detail": self.mensaje, "code": self.codigo, **self.detalle}


class ValidacionError(TurnosError):
    """Faltan campos de referencia o son inconsistentes. No se muta nada."""

    status_code = 422
    codigo = "validacion"


class ConflictoError(TurnosError):
    """Hay reservas (o cupo consumido) que impiden la operación."""

    status_code = 409
    codigo = "conflicto"


class NoEncontradoError(TurnosError):
    status_code = 404
    codigo = "no_encontrado"


class PersistenciaError(TurnosError):
    """Falló una operación contra la base de datos."""

    status_code = 500
    codigo = "persistencia"
