# apps/turnos_core/services/eventos.py
# ------------------------------------------------------------------------------
# Handlers de eventos de horarios/actividades → generación y reconciliación.
# Devuelven siempre {"success": bool, ...}; un error del motor se informa
# como "no se realizaron cambios" (la transacción ya se revirtió).
# ------------------------------------------------------------------------------
import logging

from apps.turnos_core.exceptions import TurnosError
from apps.turnos_core.services.generar_turnos import GeneradorTurnos
from apps.turnos_core.services.reconciliacion import ReconciliadorHorario

logger = logging.getLogger(__name__)

MENSAJE_ERROR_GENERACION = "No se pudieron generar los turnos, no se realizaron cambios"


def _fallo(evento, exc, **contexto):
    logger.exception("[turnos.eventos][%s][error] %s contexto=%s", evento, exc, contexto)
    return {"success": False, "error": MENSAJE_ERROR_GENERACION}


def handle_horario_creado(horario, repo=None):
    try:
        resultado = GeneradorTurnos(repo).generar(horario)
    except TurnosError as exc:
        return _fallo("horario_creado", exc, horario_id=horario.id)
    return {"success": True, **resultado.as_dict()}


def handle_horario_actualizado(anterior, actualizado, regenerar_todos=False, repo=None, hoy=None):
    try:
        resultado = ReconciliadorHorario(repo).reconciliar(
            anterior, actualizado, regenerar_todos=regenerar_todos, hoy=hoy
        )
    except TurnosError as exc:
        return _fallo("horario_actualizado", exc, horario_id=actualizado.id)
    return {"success": True, **resultado.as_dict()}


def handle_actividad_creada(actividad_id, repo=None):
    try:
        resultado = GeneradorTurnos(repo).generar_para_actividad(actividad_id)
    except TurnosError as exc:
        return _fallo("actividad_creada", exc, actividad_id=actividad_id)
    return {"success": True, **resultado.as_dict()}


def handle_actividad_eliminada(actividad_id, repo=None, hoy=None):
    try:
        resultado = ReconciliadorHorario(repo).dar_de_baja_actividad(actividad_id, hoy=hoy)
    except TurnosError as exc:
        logger.exception("[turnos.eventos][actividad_eliminada][error] actividad_id=%s", actividad_id)
        return {"success": False, "error": exc.mensaje}
    return {"success": True, **resultado}


def handle_horario_eliminado(horario, repo=None, hoy=None):
    try:
        resultado = ReconciliadorHorario(repo).dar_de_baja(horario, hoy=hoy)
    except TurnosError as exc:
        logger.exception("[turnos.eventos][horario_eliminado][error] horario_id=%s", horario.id)
        return {"success": False, "error": exc.mensaje}
    return {"success": True, **resultado.as_dict()}
