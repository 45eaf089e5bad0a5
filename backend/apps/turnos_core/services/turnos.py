# apps/turnos_core/services/turnos.py
# ------------------------------------------------------------------------------
# ABM de un turno suelto (fuera de la generación por horario).
# - crear: franja y cupo por defecto del horario; nace sin consumo.
# - actualizar: cupo_disponible nunca se escribe directo, se recalcula desde
#   el consumido al cambiar cupo_total (compare-and-swap bajo lock).
# - eliminar: soft delete sólo si el turno no tiene cupo consumido.
# - estado_turnos: turnos de un horario + modificaciones activas del período.
# ------------------------------------------------------------------------------
import logging

from django.db import transaction

from apps.turnos_core.exceptions import ConflictoError, ValidacionError
from apps.turnos_core.services.calendario import fecha_desde_iso, parse_hora
from apps.turnos_core.services.cupos import puede_reducir_cupo, recalcular_cupo_disponible
from apps.turnos_core.services.repositorio import RepositorioTurnos

logger = logging.getLogger(__name__)

CAMPOS_EDITABLES = ("fecha", "hora_inicio", "hora_fin", "cupo_total", "bloqueado")


class ServicioTurnos:
    def __init__(self, repo=None):
        self.repo = repo or RepositorioTurnos()

    def obtener(self, turno_id):
        return self.repo.obtener_turno(turno_id)

    def crear(self, *, horario_id, fecha, hora_inicio=None, hora_fin=None, cupo_total=None, bloqueado=False):
        with transaction.atomic():
            horario = self.repo.obtener_horario(horario_id, bloquear=True)
            fecha = _fecha(fecha)
            if hora_inicio is None and hora_fin is None and not horario.dia_completo:
                hora_inicio, hora_fin = horario.hora_inicio, horario.hora_fin
            hora_inicio, hora_fin = _franja(hora_inicio, hora_fin)
            cupo_total = horario.cupo if cupo_total is None else _cupo(cupo_total)

            self._verificar_fecha_libre(horario.id, fecha)
            turno = self.repo.crear_turno(
                horario_id=horario.id,
                actividad_id=horario.actividad_id,
                agencia_id=horario.agencia_id,
                fecha=fecha,
                hora_inicio=hora_inicio,
                hora_fin=hora_fin,
                cupo_total=cupo_total,
                cupo_disponible=recalcular_cupo_disponible(0, 0, cupo_total),
                bloqueado=bool(bloqueado),
            )

        logger.info(
            "[turnos.crear][ok] turno_id=%s horario_id=%s fecha=%s cupo=%s",
            turno.id, horario.id, fecha, cupo_total,
        )
        return turno

    def actualizar(self, turno_id, datos):
        otros = sorted(set(datos) - set(CAMPOS_EDITABLES))
        if otros:
            raise ValidacionError(
                "Campos no editables en un turno", detalle={"campos": otros}
            )

        with transaction.atomic():
            turno = self.repo.obtener_turno(turno_id, bloquear=True)
            campos = {}

            if "fecha" in datos:
                fecha = _fecha(datos["fecha"])
                if fecha != turno.fecha:
                    self._verificar_fecha_libre(turno.horario_id, fecha)
                    campos["fecha"] = fecha

            if "hora_inicio" in datos or "hora_fin" in datos:
                campos["hora_inicio"], campos["hora_fin"] = _franja(
                    datos.get("hora_inicio", turno.hora_inicio),
                    datos.get("hora_fin", turno.hora_fin),
                )

            if "bloqueado" in datos:
                campos["bloqueado"] = bool(datos["bloqueado"])

            if "cupo_total" in datos:
                cupo_nuevo = _cupo(datos["cupo_total"])
                consumido = turno.cupo_consumido
                if not puede_reducir_cupo(cupo_nuevo, consumido):
                    raise ConflictoError(
                        f"No se puede reducir el cupo a {cupo_nuevo} porque hay "
                        f"{consumido} reservas existentes en el turno {turno.id}",
                        detalle={"turno_id": turno.id, "consumido": consumido, "cupo_total": cupo_nuevo},
                    )
                campos["cupo_total"] = cupo_nuevo
                campos["cupo_disponible"] = recalcular_cupo_disponible(
                    turno.cupo_total, turno.cupo_disponible, cupo_nuevo
                )

            if campos:
                ok = self.repo.actualizar_turno(
                    turno.id,
                    esperado={"cupo_total": turno.cupo_total, "cupo_disponible": turno.cupo_disponible},
                    **campos,
                )
                if not ok:
                    raise ConflictoError(
                        "El turno fue modificado concurrentemente, reintentar",
                        detalle={"turno_id": turno.id},
                    )

        logger.info("[turnos.actualizar][ok] turno_id=%s campos=%s", turno_id, sorted(campos))
        return self.repo.obtener_turno(turno_id)

    def eliminar(self, turno_id):
        with transaction.atomic():
            turno = self.repo.obtener_turno(turno_id, bloquear=True)
            if not self.repo.soft_delete_turnos_intactos([turno.id]):
                raise ConflictoError(
                    "No se puede eliminar un turno con reservas",
                    detalle={"turno_id": turno.id, "consumido": turno.cupo_consumido},
                )

        logger.info("[turnos.eliminar][ok] turno_id=%s", turno_id)
        return turno

    def estado_turnos(self, horario_id, fecha_desde, fecha_hasta):
        """Turnos del horario en el período y las modificaciones activas contenidas en él."""
        desde, hasta = _fecha(fecha_desde), _fecha(fecha_hasta)
        if desde > hasta:
            raise ValidacionError("fecha_desde no puede ser posterior a fecha_hasta")

        turnos = self.repo.turnos_de_horario_en_rango(horario_id, desde, hasta)
        modificaciones = self.repo.modificaciones_de_horario_en_rango(horario_id, desde, hasta)
        return {
            "turnos": turnos,
            "modificaciones": modificaciones,
            "resumen": {
                "total_turnos": len(turnos),
                "total_modificaciones": len(modificaciones),
                "turnos_con_cupo_disponible": sum(1 for t in turnos if t.cupo_disponible > 0),
            },
        }

    def _verificar_fecha_libre(self, horario_id, fecha):
        if self.repo.fechas_existentes(horario_id, [fecha]):
            raise ConflictoError(
                "Ya existe un turno para esta fecha y horario",
                detalle={"horario_id": horario_id, "fecha": fecha.isoformat()},
            )


def _fecha(valor):
    try:
        return fecha_desde_iso(valor)
    except (TypeError, ValueError):
        raise ValidacionError("Fecha requerida con formato YYYY-MM-DD", detalle={"fecha": str(valor)})


def _franja(hora_inicio, hora_fin):
    try:
        hora_inicio, hora_fin = parse_hora(hora_inicio), parse_hora(hora_fin)
    except ValueError as exc:
        raise ValidacionError(str(exc))
    if hora_inicio is not None and hora_fin is not None and hora_inicio >= hora_fin:
        raise ValidacionError("hora_fin debe ser posterior a hora_inicio")
    return hora_inicio, hora_fin


def _cupo(valor):
    try:
        cupo = int(valor)
    except (TypeError, ValueError):
        raise ValidacionError(f"Cupo inválido: {valor!r}")
    if cupo < 0:
        raise ValidacionError("El cupo no puede ser negativo", detalle={"cupo_total": cupo})
    return cupo
