# apps/common/exceptions.py
# ------------------------------------------------------------------------------
# EXCEPTION_HANDLER de DRF.
# - TurnosError (errores del motor) → {"detail", "code", ...detalle} con su status.
# - Todo lo demás lo resuelve el handler estándar de DRF.
# ------------------------------------------------------------------------------
import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.turnos_core.exceptions import PersistenciaError, TurnosError

logger = logging.getLogger(__name__)


def turnos_exception_handler(exc, context):
    if isinstance(exc, TurnosError):
        view = context.get("view")
        vista = view.__class__.__name__ if view is not None else None
        if isinstance(exc, PersistenciaError):
            logger.error("[api.error] view=%s code=%s detalle=%s", vista, exc.codigo, exc.detalle)
        else:
            logger.info("[api.rechazo] view=%s code=%s msg=%s", vista, exc.codigo, exc.mensaje)
        return Response(exc.as_dict(), status=exc.status_code)

    return exception_handler(exc, context)
