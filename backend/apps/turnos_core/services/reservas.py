# apps/turnos_core/services/reservas.py
# ------------------------------------------------------------------------------
# Circuito mínimo de reservas contra el cupo de un turno.
# - retener_cupo: decremento condicional (cupo suficiente y turno no bloqueado)
# - cancelar_reserva: devuelve el cupo, acotado a cupo_total
# - resumen_reservas: turnos de un alcance con cupo consumido
# El checkout/pagos real vive fuera de este servicio.
# ------------------------------------------------------------------------------
import logging

from django.db import transaction

from apps.turnos_core.exceptions import ConflictoError, ValidacionError
from apps.turnos_core.models import TipoModificacion
from apps.turnos_core.services.calendario import fecha_desde_iso
from apps.turnos_core.services.repositorio import Alcance, RepositorioTurnos

logger = logging.getLogger(__name__)

ESTADOS_ACTIVOS = ("hold", "confirmada")


def retener_cupo(turno_id, cantidad=1, estado="hold", repo=None):
    repo = repo or RepositorioTurnos()
    cantidad = int(cantidad)
    if cantidad <= 0:
        raise ValidacionError("La cantidad debe ser mayor a 0", detalle={"cantidad": cantidad})
    if estado not in ESTADOS_ACTIVOS:
        raise ValidacionError("Estado de reserva inválido", detalle={"estado": estado})

    with transaction.atomic():
        turno = repo.obtener_turno(turno_id, bloquear=True)
        if not repo.descontar_cupo(turno.id, cantidad):
            logger.info(
                "[reservas.retener][rechazo] turno_id=%s cantidad=%s disponible=%s bloqueado=%s",
                turno.id, cantidad, turno.cupo_disponible, turno.bloqueado,
            )
            raise ConflictoError(
                "El turno no tiene cupo suficiente o está bloqueado",
                detalle={
                    "turno_id": turno.id,
                    "cupo_disponible": turno.cupo_disponible,
                    "cantidad": cantidad,
                },
            )
        reserva = repo.crear_reserva(turno, cantidad, estado)

    logger.info(
        "[reservas.retener][ok] reserva_id=%s turno_id=%s cantidad=%s estado=%s",
        reserva.id, turno.id, cantidad, estado,
    )
    return reserva


def cancelar_reserva(reserva_id, repo=None):
    repo = repo or RepositorioTurnos()
    with transaction.atomic():
        reserva = repo.obtener_reserva(reserva_id, bloquear=True)
        if reserva.estado == "cancelada":
            logger.info("[reservas.cancelar][skip] Ya cancelada. reserva_id=%s", reserva.id)
            return reserva
        repo.devolver_cupo(reserva.turno_id, reserva.cantidad)
        repo.cambiar_estado_reserva(reserva, "cancelada")

    logger.info(
        "[reservas.cancelar][ok] reserva_id=%s turno_id=%s cantidad=%s",
        reserva.id, reserva.turno_id, reserva.cantidad,
    )
    return reserva


def resumen_reservas(*, fecha_desde, fecha_hasta, horario_id=None, actividad_id=None, repo=None):
    """Turnos del período que ya tienen cupo consumido (verificación previa a una modificación)."""
    repo = repo or RepositorioTurnos()
    if horario_id is None and actividad_id is None:
        raise ValidacionError("Se requiere horario_id o actividad_id")
    try:
        desde, hasta = fecha_desde_iso(fecha_desde), fecha_desde_iso(fecha_hasta)
    except (TypeError, ValueError):
        raise ValidacionError("fecha_desde y fecha_hasta son requeridas con formato YYYY-MM-DD")

    if horario_id is not None:
        alcance = Alcance(
            tipo=TipoModificacion.BLOQUEAR_HORARIO,
            fecha_desde=desde, fecha_hasta=hasta, horario_id=int(horario_id),
        )
    else:
        alcance = Alcance(
            tipo=TipoModificacion.BLOQUEAR_ACTIVIDAD,
            fecha_desde=desde, fecha_hasta=hasta, actividad_id=int(actividad_id),
        )

    turnos = repo.turnos_en_alcance(alcance)
    con_reservas = [t for t in turnos if t.cupo_consumido > 0]
    return {
        "affected_reservations": len(con_reservas),
        "total_turnos": len(turnos),
        "turnos_con_reservas": [
            {
                "id": t.id,
                "fecha": t.fecha.isoformat(),
                "hora_inicio": t.hora_inicio.strftime("%H:%M") if t.hora_inicio else None,
                "cupo_total": t.cupo_total,
                "cupo_disponible": t.cupo_disponible,
                "consumido": t.cupo_consumido,
            }
            for t in con_reservas
        ],
    }
