# apps/turnos_core/services/reconciliacion.py
# ------------------------------------------------------------------------------
# Reconciliación de turnos cuando se edita un horario.
#
# Decide según qué cambió entre el horario anterior y el actualizado:
#   - nada relevante para regenerar, sólo cupo → propagar cupo a turnos futuros
#   - quedó deshabilitado                     → bloquear turnos futuros
#   - cambió forma (fecha/días/horas/habilitada) → soft delete de turnos sin
#     reservas + parche en el lugar de turnos con reservas + regenerar
#
# Un turno con cupo consumido NUNCA se borra ni se recrea: se parchea en el
# lugar, con compare-and-swap sobre (cupo_total, cupo_disponible) y bajo
# select_for_update. El consumido de un turno nunca baja por una reconciliación.
# ------------------------------------------------------------------------------
import logging
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from django.db import transaction

from apps.turnos_core.exceptions import PersistenciaError
from apps.turnos_core.models import TipoModificacion
from apps.turnos_core.services.calendario import hoy_utc
from apps.turnos_core.services.cupos import recalcular_cupo_disponible
from apps.turnos_core.services.generar_turnos import GeneradorTurnos
from apps.turnos_core.services.repositorio import RepositorioTurnos

logger = logging.getLogger(__name__)

CAMPOS_REGENERACION = (
    "habilitada",
    "fecha_inicio",
    "dias",
    "dia_completo",
    "hora_inicio",
    "hora_fin",
)

SIN_CAMBIOS = "sin_cambios"
PROPAGAR_CUPO = "propagar_cupo"
BLOQUEAR = "bloquear"
REGENERAR = "regenerar"
BAJA = "baja"


def max_reintentos_cas() -> int:
    return int(getattr(settings, "TURNOS_MAX_REINTENTOS_CAS", 3))


@dataclass(frozen=True)
class SnapshotHorario:
    """Copia inmutable de un horario tomada antes de guardar la edición."""

    id: int
    actividad_id: int
    agencia_id: int
    habilitada: bool
    fecha_inicio: object
    dias: tuple
    dia_completo: bool
    hora_inicio: object
    hora_fin: object
    cupo: int

    @classmethod
    def de_horario(cls, horario):
        return cls(
            id=horario.id,
            actividad_id=horario.actividad_id,
            agencia_id=horario.agencia_id,
            habilitada=horario.habilitada,
            fecha_inicio=horario.fecha_inicio,
            dias=tuple(horario.dias or ()),
            dia_completo=horario.dia_completo,
            hora_inicio=horario.hora_inicio,
            hora_fin=horario.hora_fin,
            cupo=horario.cupo,
        )


def campos_regeneracion_cambiados(anterior, actualizado):
    cambiados = []
    for campo in CAMPOS_REGENERACION:
        antes, despues = getattr(anterior, campo), getattr(actualizado, campo)
        if campo == "dias":
            antes = {int(d) for d in (antes or ())}
            despues = {int(d) for d in (despues or ())}
        if antes != despues:
            cambiados.append(campo)
    return cambiados


@dataclass
class ResultadoReconciliacion:
    accion: str
    horario_id: int
    campos_cambiados: list = field(default_factory=list)
    regenerado: bool = False
    turnos_parcheados: int = 0
    turnos_eliminados: int = 0
    turnos_bloqueados: int = 0
    cupos_actualizados: int = 0
    turnos_reaplicados: int = 0
    generacion: Optional[object] = None

    def as_dict(self):
        return {
            "accion": self.accion,
            "horario_id": self.horario_id,
            "campos_cambiados": list(self.campos_cambiados),
            "regenerado": self.regenerado,
            "turnos_parcheados": self.turnos_parcheados,
            "turnos_eliminados": self.turnos_eliminados,
            "turnos_bloqueados": self.turnos_bloqueados,
            "cupos_actualizados": self.cupos_actualizados,
            "turnos_reaplicados": self.turnos_reaplicados,
            "generacion": self.generacion.as_dict() if self.generacion else None,
        }


class ReconciliadorHorario:
    def __init__(self, repo=None, generador=None):
        self.repo = repo or RepositorioTurnos()
        self.generador = generador or GeneradorTurnos(self.repo)

    def decidir_accion(self, anterior, actualizado):
        cambiados = campos_regeneracion_cambiados(anterior, actualizado)
        cupo_cambiado = anterior.cupo != actualizado.cupo

        if not actualizado.habilitada:
            if anterior.habilitada or cambiados or cupo_cambiado:
                return BLOQUEAR, cambiados
            return SIN_CAMBIOS, cambiados
        if not cambiados:
            return (PROPAGAR_CUPO if cupo_cambiado else SIN_CAMBIOS), cambiados
        return REGENERAR, cambiados

    def reconciliar(self, anterior, actualizado, *, regenerar_todos=False, hoy=None):
        """
        `anterior`: SnapshotHorario (o cualquier objeto con los mismos atributos).
        `actualizado`: Horario ya guardado.
        `regenerar_todos`: también procesa turnos pasados (por defecto sólo fecha >= hoy).
        """
        hoy = hoy or hoy_utc()
        accion, cambiados = self.decidir_accion(anterior, actualizado)
        resultado = ResultadoReconciliacion(
            accion=accion, horario_id=actualizado.id, campos_cambiados=cambiados
        )

        logger.info(
            "[turnos.reconciliar][start] horario_id=%s accion=%s cambiados=%s cupo=%s→%s",
            actualizado.id, accion, cambiados, anterior.cupo, actualizado.cupo,
        )

        if accion == BLOQUEAR:
            resultado.turnos_bloqueados = self.repo.bloquear_turnos_desde(actualizado.id, hoy)
        elif accion == PROPAGAR_CUPO:
            self._propagar_cupo(actualizado, hoy, resultado)
        elif accion == REGENERAR:
            self._regenerar(anterior, actualizado, hoy, regenerar_todos, resultado)

        logger.info(
            "[turnos.reconciliar][done] horario_id=%s accion=%s parcheados=%s eliminados=%s "
            "bloqueados=%s cupos_actualizados=%s",
            actualizado.id, accion, resultado.turnos_parcheados, resultado.turnos_eliminados,
            resultado.turnos_bloqueados, resultado.cupos_actualizados,
        )
        return resultado

    def dar_de_baja(self, horario, *, hoy=None):
        """
        Horario eliminado: soft delete de sus turnos futuros sin reservas.
        Los que tienen reservas quedan vivos pero bloqueados.
        """
        hoy = hoy or hoy_utc()
        resultado = ResultadoReconciliacion(accion=BAJA, horario_id=horario.id)
        with transaction.atomic():
            turnos = self.repo.turnos_de_horario(horario.id, desde=hoy, bloquear=True)
            intactos = [t.id for t in turnos if t.cupo_total == t.cupo_disponible]
            resultado.turnos_eliminados = self.repo.soft_delete_turnos_intactos(intactos)
            vivos = self.repo.turnos_de_horario(horario.id, desde=hoy)
            resultado.turnos_bloqueados = self.repo.actualizar_turnos(
                [t.id for t in vivos if not t.bloqueado], bloqueado=True
            )

        logger.info(
            "[turnos.baja_horario][done] horario_id=%s eliminados=%s bloqueados=%s",
            horario.id, resultado.turnos_eliminados, resultado.turnos_bloqueados,
        )
        return resultado

    def dar_de_baja_actividad(self, actividad_id, *, hoy=None):
        """Actividad eliminada: soft delete de sus horarios y baja de cada uno (ver dar_de_baja)."""
        hoy = hoy or hoy_utc()
        total = {
            "actividad_id": actividad_id,
            "horarios_eliminados": 0,
            "turnos_eliminados": 0,
            "turnos_bloqueados": 0,
        }
        with transaction.atomic():
            horarios = self.repo.horarios_de_actividad(actividad_id, bloquear=True)
            total["horarios_eliminados"] = self.repo.soft_delete_horarios([h.id for h in horarios])
            for horario in horarios:
                resultado = self.dar_de_baja(horario, hoy=hoy)
                total["turnos_eliminados"] += resultado.turnos_eliminados
                total["turnos_bloqueados"] += resultado.turnos_bloqueados

        logger.info(
            "[turnos.baja_actividad][done] actividad_id=%s horarios=%s eliminados=%s bloqueados=%s",
            actividad_id, total["horarios_eliminados"], total["turnos_eliminados"],
            total["turnos_bloqueados"],
        )
        return total

    # ------------------------------------------------------------------
    def _propagar_cupo(self, horario, hoy, resultado):
        with transaction.atomic():
            turnos = self.repo.turnos_de_horario(horario.id, desde=hoy, bloquear=True)
            modificaciones = self.repo.modificaciones_activas_de_horario(horario.id, hoy)

            # Los turnos bajo un CAMBIAR_CUPOS activo conservan el cupo temporario;
            # el nuevo cupo del horario queda como valor a restaurar al revertir.
            for modificacion in modificaciones:
                self.repo.actualizar_modificacion(modificacion, cupo_actual=horario.cupo)

            for turno in turnos:
                if any(m.fecha_desde <= turno.fecha <= m.fecha_hasta for m in modificaciones):
                    continue
                if self._parchear(turno, horario.cupo):
                    resultado.cupos_actualizados += 1

    def _regenerar(self, anterior, horario, hoy, regenerar_todos, resultado):
        desde = None if regenerar_todos else hoy
        reactivado = not anterior.habilitada and horario.habilitada

        with transaction.atomic():
            turnos = self.repo.turnos_de_horario(horario.id, desde=desde, bloquear=True)
            intactos = [t for t in turnos if t.cupo_total == t.cupo_disponible]
            consumidos = [t for t in turnos if t.cupo_total != t.cupo_disponible]

            resultado.turnos_eliminados = self.repo.soft_delete_turnos_intactos(
                [t.id for t in intactos]
            )
            if resultado.turnos_eliminados < len(intactos):
                # Alguno recibió una reserva entre la lectura y el borrado: se parchea.
                consumidos.extend(
                    self.repo.turnos_por_ids([t.id for t in intactos], bloquear=True)
                )

            campos = {
                "hora_inicio": None if horario.dia_completo else horario.hora_inicio,
                "hora_fin": None if horario.dia_completo else horario.hora_fin,
            }
            bloqueados_por_modificacion = (
                self.repo.ids_turnos_con_bloqueo_activo(consumidos) if reactivado else set()
            )
            for turno in consumidos:
                extra = dict(campos)
                if reactivado and turno.id not in bloqueados_por_modificacion:
                    extra["bloqueado"] = False
                if self._parchear(turno, horario.cupo, **extra):
                    resultado.turnos_parcheados += 1

            resultado.generacion = self.generador.generar(horario)
            resultado.regenerado = True
            resultado.turnos_reaplicados = self._reaplicar_modificaciones(anterior, horario, desde)

    def _reaplicar_modificaciones(self, anterior, horario, desde):
        """
        Los turnos regenerados (y los parcheados) vuelven a quedar bajo las
        modificaciones temporarias vigentes: bloqueos, hora y cupo temporario.
        Los valores a restaurar de cada modificación pasan a ser los del horario editado.
        """
        turnos = self.repo.turnos_de_horario(horario.id, desde=desde, bloquear=True)
        tocados = set()
        hora_inicio = None if horario.dia_completo else horario.hora_inicio
        hora_fin = None if horario.dia_completo else horario.hora_fin

        cubiertos = self.repo.ids_turnos_con_bloqueo_activo([t for t in turnos if not t.bloqueado])
        if cubiertos:
            self.repo.actualizar_turnos(cubiertos, bloqueado=True)
            tocados |= cubiertos

        for modificacion in self.repo.modificaciones_activas_de_horario(
            horario.id, desde, tipo=TipoModificacion.CAMBIAR_HORA_INICIO
        ):
            ids = [
                t.id for t in turnos
                if modificacion.fecha_desde <= t.fecha <= modificacion.fecha_hasta
                and (
                    modificacion.hora_fin_nueva is not None
                    or t.hora_fin is None
                    or modificacion.hora_inicio_nueva < t.hora_fin
                )
            ]
            campos = {"hora_inicio": modificacion.hora_inicio_nueva}
            previos = {"hora_inicio_actual": hora_inicio}
            if modificacion.hora_fin_nueva is not None:
                campos["hora_fin"] = modificacion.hora_fin_nueva
                previos["hora_fin_actual"] = hora_fin
            self.repo.actualizar_turnos(ids, **campos)
            self.repo.actualizar_modificacion(modificacion, **previos)
            tocados.update(ids)

        for modificacion in self.repo.modificaciones_activas_de_horario(horario.id, desde):
            if anterior.cupo != horario.cupo:
                self.repo.actualizar_modificacion(modificacion, cupo_actual=horario.cupo)
            for turno in turnos:
                if modificacion.fecha_desde <= turno.fecha <= modificacion.fecha_hasta:
                    if self._parchear(turno, modificacion.nuevos_cupos_totales):
                        tocados.add(turno.id)

        if tocados:
            logger.info(
                "[turnos.reconciliar][reaplicar] horario_id=%s turnos=%s", horario.id, len(tocados)
            )
        return len(tocados)

    def _parchear(self, turno, cupo_nuevo, **campos):
        """
        Compare-and-swap de un turno: recalcula disponible desde su consumido y
        sólo escribe si (cupo_total, cupo_disponible) no cambió desde la lectura.
        """
        actual = turno
        reintentos = max_reintentos_cas()
        for intento in range(1, reintentos + 1):
            consumido = actual.cupo_consumido
            cupo_total = max(cupo_nuevo, consumido)
            cupo_disponible = recalcular_cupo_disponible(
                actual.cupo_total, actual.cupo_disponible, cupo_total
            )
            sin_cambios = (
                actual.cupo_total == cupo_total
                and actual.cupo_disponible == cupo_disponible
                and all(getattr(actual, k) == v for k, v in campos.items())
            )
            if sin_cambios:
                return False

            ok = self.repo.actualizar_turno(
                actual.id,
                esperado={
                    "cupo_total": actual.cupo_total,
                    "cupo_disponible": actual.cupo_disponible,
                },
                cupo_total=cupo_total,
                cupo_disponible=cupo_disponible,
                **campos,
            )
            if ok:
                if cupo_nuevo < consumido:
                    logger.warning(
                        "[turnos.reconciliar][cupo] Cupo nuevo menor al consumido, se conserva el consumido. "
                        "turno_id=%s cupo_nuevo=%s consumido=%s",
                        actual.id, cupo_nuevo, consumido,
                    )
                return True

            logger.warning(
                "[turnos.reconciliar][cas] Turno modificado concurrentemente, reintento %s/%s. turno_id=%s",
                intento, reintentos, actual.id,
            )
            actual = self.repo.obtener_turno(actual.id, bloquear=True)

        logger.error(
            "[turnos.reconciliar][cas] Sin éxito tras %s reintentos. turno_id=%s horario_id=%s",
            reintentos, turno.id, turno.horario_id,
        )
        raise PersistenciaError(
            "No se pudo actualizar el turno por modificaciones concurrentes",
            detalle={"turno_id": turno.id, "horario_id": turno.horario_id},
        )


def reconciliar_horario(anterior, actualizado, *, regenerar_todos=False, hoy=None, repo=None):
    return ReconciliadorHorario(repo).reconciliar(
        anterior, actualizado, regenerar_todos=regenerar_todos, hoy=hoy
    )
