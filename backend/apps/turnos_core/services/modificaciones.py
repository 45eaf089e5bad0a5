# apps/turnos_core/services/modificaciones.py
# ------------------------------------------------------------------------------
# Modificaciones temporarias: overrides acotados en fechas sobre los turnos
# (bloquear horario/actividad/todas, cambiar hora de inicio, cambiar cupos).
#
# Flujo: validar → verificar conflictos → guardar (captura valores previos)
#        → aplicar. Revertir restaura y da de baja (soft delete) el registro.
#
# - Validación y conflictos se detectan ANTES de escribir: no hay efectos.
# - Bloqueos y cambio de hora: un único UPDATE por lote; si falla, se
#   reintenta turno por turno.
# - Cambio de cupos: por turno, compare-and-swap, re-chequeando bajo lock
#   que el cupo nuevo no quede por debajo del consumido.
# - Fallas por turno: se loguean y se sigue (turnos_intentados vs modificados).
# ------------------------------------------------------------------------------
import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction

from apps.turnos_core.exceptions import (
    ConflictoError,
    PersistenciaError,
    TurnosError,
    ValidacionError,
)
from apps.turnos_core.models import TipoModificacion
from apps.turnos_core.services.calendario import fecha_desde_iso, parse_hora
from apps.turnos_core.services.cupos import puede_reducir_cupo, recalcular_cupo_disponible
from apps.turnos_core.services.repositorio import Alcance, RepositorioTurnos

logger = logging.getLogger(__name__)

ADVERTENCIA_NO_APLICADA = (
    "La modificación se guardó pero no se pudo aplicar a los turnos"
)
ADVERTENCIA_PARCIAL = "La modificación se guardó pero algunos turnos no pudieron modificarse"

CAMPOS_MODIFICACION = (
    "tipo_modificacion", "horario_id", "actividad_id", "agencia_id",
    "fecha_desde", "fecha_hasta",
    "hora_inicio_actual", "hora_fin_actual", "cupo_actual",
    "hora_inicio_nueva", "hora_fin_nueva", "nuevos_cupos_totales",
    "motivo",
)
CAMPOS_EDITABLES = (
    "fecha_desde", "fecha_hasta", "hora_inicio_nueva", "hora_fin_nueva",
    "nuevos_cupos_totales", "motivo",
)


@dataclass
class ResultadoModificacion:
    modificacion_id: int
    turnos_intentados: int = 0
    turnos_modificados: int = 0
    advertencia: Optional[str] = None

    @property
    def completo(self):
        return self.advertencia is None and self.turnos_modificados == self.turnos_intentados

    def as_dict(self):
        data = {
            "modificacion_id": self.modificacion_id,
            "turnos_intentados": self.turnos_intentados,
            "turnos_modificados": self.turnos_modificados,
        }
        if self.advertencia:
            data["warning"] = self.advertencia
        return data


class MotorModificaciones:
    def __init__(self, repo=None):
        self.repo = repo or RepositorioTurnos()

    # ------------------------------------------------------------------
    # Validación
    # ------------------------------------------------------------------
    def validar(self, datos):
        """
        Normaliza el payload a los campos del modelo.
        Lanza ValidacionError (o NoEncontradoError si el horario no existe).
        """
        tipo_raw = datos.get("tipo_modificacion")
        try:
            tipo = TipoModificacion(tipo_raw)
        except ValueError:
            raise ValidacionError(
                "Tipo de modificación no reconocido",
                detalle={"tipo_modificacion": tipo_raw},
            )

        campo = tipo.campo_referencia
        if datos.get(campo) in (None, ""):
            raise ValidacionError(
                f"{campo} es requerido para este tipo de modificación",
                detalle={"campo": campo, "tipo_modificacion": tipo.value},
            )

        try:
            fecha_desde = fecha_desde_iso(datos.get("fecha_desde"))
            fecha_hasta = fecha_desde_iso(datos.get("fecha_hasta"))
        except (TypeError, ValueError):
            raise ValidacionError(
                "fecha_desde y fecha_hasta son requeridas con formato YYYY-MM-DD"
            )
        if fecha_desde > fecha_hasta:
            raise ValidacionError(
                "fecha_desde no puede ser posterior a fecha_hasta",
                detalle={"fecha_desde": str(fecha_desde), "fecha_hasta": str(fecha_hasta)},
            )

        try:
            horas = {
                k: parse_hora(datos.get(k))
                for k in ("hora_inicio_actual", "hora_fin_actual", "hora_inicio_nueva", "hora_fin_nueva")
            }
        except ValueError as exc:
            raise ValidacionError(str(exc))

        campos = {
            "tipo_modificacion": tipo.value,
            "horario_id": _entero_o_none(datos.get("horario_id")),
            "actividad_id": _entero_o_none(datos.get("actividad_id")),
            "agencia_id": _entero_o_none(datos.get("agencia_id")),
            "fecha_desde": fecha_desde,
            "fecha_hasta": fecha_hasta,
            "cupo_actual": _entero_o_none(datos.get("cupo_actual")),
            "nuevos_cupos_totales": _entero_o_none(datos.get("nuevos_cupos_totales")),
            "motivo": (datos.get("motivo") or "").strip(),
            **horas,
        }

        if tipo == TipoModificacion.CAMBIAR_HORA_INICIO:
            if campos["hora_inicio_nueva"] is None:
                raise ValidacionError("hora_inicio_nueva es requerida para cambiar la hora de inicio")
            if campos["hora_fin_nueva"] is not None and campos["hora_fin_nueva"] <= campos["hora_inicio_nueva"]:
                raise ValidacionError("hora_fin_nueva debe ser posterior a hora_inicio_nueva")

        if tipo == TipoModificacion.CAMBIAR_CUPOS:
            nuevos = campos["nuevos_cupos_totales"]
            if nuevos is None or nuevos < 0:
                raise ValidacionError("nuevos_cupos_totales es requerido y no puede ser negativo")

        if campos["horario_id"] is not None:
            horario = self.repo.obtener_horario(campos["horario_id"])
            if campos["actividad_id"] is None:
                campos["actividad_id"] = horario.actividad_id
            if campos["agencia_id"] is None:
                campos["agencia_id"] = horario.agencia_id

        return campos

    # ------------------------------------------------------------------
    # Conflictos
    # ------------------------------------------------------------------
    def verificar_conflictos(self, campos, *, excluir_id=None):
        """Toma lock sobre los turnos del alcance y rechaza con ConflictoError."""
        alcance = _alcance_de_campos(campos)

        superpuestas = self.repo.modificaciones_superpuestas(alcance, excluir_id=excluir_id)
        if superpuestas:
            raise ConflictoError(
                "Ya existe una modificación activa del mismo tipo para el período seleccionado",
                detalle={"modificaciones": [m.id for m in superpuestas]},
            )

        self._verificar_turnos(
            alcance,
            nuevos_cupos_totales=campos.get("nuevos_cupos_totales"),
            hora_inicio_nueva=campos.get("hora_inicio_nueva"),
            hora_fin_nueva=campos.get("hora_fin_nueva"),
        )
        return alcance

    def _verificar_turnos(
        self, alcance, *, nuevos_cupos_totales=None, hora_inicio_nueva=None, hora_fin_nueva=None,
    ):
        """Franja inconsistente en algún turno → ValidacionError; reservas → ConflictoError."""
        turnos = self.repo.turnos_en_alcance(alcance, bloquear=True)
        if alcance.tipo == TipoModificacion.CAMBIAR_HORA_INICIO and hora_fin_nueva is None:
            _verificar_hora_inicio(turnos, hora_inicio_nueva)
        return self._verificar_reservas(alcance, turnos, nuevos_cupos_totales)

    def _verificar_reservas(self, alcance, turnos, nuevos_cupos_totales=None):
        if alcance.tipo == TipoModificacion.CAMBIAR_CUPOS:
            for turno in turnos:
                consumido = turno.cupo_consumido
                if not puede_reducir_cupo(nuevos_cupos_totales, consumido):
                    raise ConflictoError(
                        f"No se puede reducir el cupo a {nuevos_cupos_totales} porque hay "
                        f"{consumido} reservas existentes en el turno {turno.id}",
                        detalle={
                            "turno_id": turno.id,
                            "consumido": consumido,
                            "nuevos_cupos_totales": nuevos_cupos_totales,
                        },
                    )
            return turnos

        reservas = self.repo.contar_reservas_en_conflicto(alcance)
        if reservas:
            raise ConflictoError(
                "No se puede realizar la modificación porque hay reservas asociadas "
                "en el período seleccionado",
                detalle={"reservas": reservas, **alcance.as_dict()},
            )
        return turnos

    # ------------------------------------------------------------------
    # Guardar / aplicar
    # ------------------------------------------------------------------
    def guardar(self, datos):
        with transaction.atomic():
            campos = self.validar(datos)
            alcance = self.verificar_conflictos(campos)
            self._capturar_valores_previos(campos, alcance)
            modificacion = self.repo.crear_modificacion(**campos)

        logger.info(
            "[modificaciones.guardar][ok] id=%s tipo=%s ref=%s rango=[%s..%s]",
            modificacion.id, modificacion.tipo_modificacion, alcance.referencia,
            modificacion.fecha_desde, modificacion.fecha_hasta,
        )
        return modificacion

    def _capturar_valores_previos(self, campos, alcance):
        tipo = alcance.tipo
        if tipo not in (TipoModificacion.CAMBIAR_HORA_INICIO, TipoModificacion.CAMBIAR_CUPOS):
            return

        turnos = self.repo.turnos_en_alcance(alcance)
        referencia = turnos[0] if turnos else None
        horario = None
        if referencia is None:
            horario = self.repo.obtener_horario(campos["horario_id"])

        if tipo == TipoModificacion.CAMBIAR_HORA_INICIO:
            # Turnos de día completo: la franja previa es (None, None) y se restaura así.
            if referencia is not None:
                franja = (referencia.hora_inicio, referencia.hora_fin)
            elif horario.dia_completo:
                franja = (None, None)
            else:
                franja = (horario.hora_inicio, horario.hora_fin)
            if campos["hora_inicio_actual"] is None:
                campos["hora_inicio_actual"] = franja[0]
            if campos["hora_fin_nueva"] is not None and campos["hora_fin_actual"] is None:
                campos["hora_fin_actual"] = franja[1]
        elif campos["cupo_actual"] is None:
            campos["cupo_actual"] = referencia.cupo_total if referencia else horario.cupo

    def aplicar(self, modificacion):
        alcance = Alcance.de_modificacion(modificacion)
        tipo = alcance.tipo

        with transaction.atomic():
            turnos = self.repo.turnos_en_alcance(alcance, bloquear=True)

            if tipo.es_bloqueo:
                modificados = self._actualizar_lote(modificacion, turnos, {"bloqueado": True})
            elif tipo == TipoModificacion.CAMBIAR_HORA_INICIO:
                campos = {"hora_inicio": modificacion.hora_inicio_nueva}
                if modificacion.hora_fin_nueva is not None:
                    campos["hora_fin"] = modificacion.hora_fin_nueva
                modificados = self._actualizar_lote(modificacion, turnos, campos)
            else:
                modificados = sum(
                    1
                    for turno in turnos
                    if self._cambiar_cupo(modificacion, turno, modificacion.nuevos_cupos_totales)
                )

        resultado = ResultadoModificacion(
            modificacion_id=modificacion.id,
            turnos_intentados=len(turnos),
            turnos_modificados=modificados,
        )
        logger.info(
            "[modificaciones.aplicar][done] id=%s tipo=%s intentados=%s modificados=%s",
            modificacion.id, tipo.value, resultado.turnos_intentados, resultado.turnos_modificados,
        )
        return resultado

    def crear_y_aplicar(self, datos):
        """
        Punto de entrada público: guarda y aplica en la misma transacción.
        Si aplicar falla, el registro queda guardado y el resultado trae advertencia.
        """
        with transaction.atomic():
            modificacion = self.guardar(datos)
            try:
                with transaction.atomic():
                    resultado = self.aplicar(modificacion)
            except TurnosError:
                logger.exception(
                    "[modificaciones.crear_y_aplicar][warn] Guardada pero no aplicada. id=%s",
                    modificacion.id,
                )
                return ResultadoModificacion(
                    modificacion_id=modificacion.id, advertencia=ADVERTENCIA_NO_APLICADA
                )

        if resultado.turnos_modificados < resultado.turnos_intentados:
            resultado.advertencia = ADVERTENCIA_PARCIAL
        return resultado

    def aplicar_existente(self, modificacion_id):
        """Re-aplica una modificación activa (p. ej. sobre turnos generados después)."""
        with transaction.atomic():
            modificacion = self.repo.obtener_modificacion(modificacion_id, bloquear=True)
            if not modificacion.activo:
                raise ConflictoError(
                    "La modificación no está activa",
                    detalle={"modificacion_id": modificacion_id},
                )
            self._verificar_turnos(
                Alcance.de_modificacion(modificacion),
                nuevos_cupos_totales=modificacion.nuevos_cupos_totales,
                hora_inicio_nueva=modificacion.hora_inicio_nueva,
                hora_fin_nueva=modificacion.hora_fin_nueva,
            )
            return self.aplicar(modificacion)

    # ------------------------------------------------------------------
    # Editar
    # ------------------------------------------------------------------
    def editar(self, modificacion_id, datos):
        """
        Edita una modificación activa en una sola transacción: deshace su efecto,
        valida y chequea conflictos con los valores nuevos (sin contarse a sí misma),
        guarda y vuelve a aplicar. El tipo y la referencia no se editan.
        """
        fijos = sorted(set(datos) - set(CAMPOS_EDITABLES))
        if fijos:
            raise ValidacionError(
                "Sólo se pueden editar las fechas, los valores nuevos y el motivo",
                detalle={"campos": fijos},
            )

        with transaction.atomic():
            modificacion = self.repo.obtener_modificacion(modificacion_id, bloquear=True)
            if not modificacion.activo:
                raise ConflictoError(
                    "La modificación no está activa",
                    detalle={"modificacion_id": modificacion_id},
                )
            actuales = {c: getattr(modificacion, c) for c in CAMPOS_MODIFICACION}
            campos = self.validar({**actuales, **datos})

            self._deshacer(modificacion)
            alcance = self.verificar_conflictos(campos, excluir_id=modificacion.id)
            self._capturar_valores_previos(campos, alcance)
            modificacion = self.repo.actualizar_modificacion(modificacion, **campos)

            try:
                with transaction.atomic():
                    resultado = self.aplicar(modificacion)
            except TurnosError:
                logger.exception(
                    "[modificaciones.editar][warn] Editada pero no aplicada. id=%s", modificacion.id
                )
                return ResultadoModificacion(
                    modificacion_id=modificacion.id, advertencia=ADVERTENCIA_NO_APLICADA
                )

        logger.info(
            "[modificaciones.editar][ok] id=%s campos=%s rango=[%s..%s]",
            modificacion.id, sorted(datos), modificacion.fecha_desde, modificacion.fecha_hasta,
        )
        if resultado.turnos_modificados < resultado.turnos_intentados:
            resultado.advertencia = ADVERTENCIA_PARCIAL
        return resultado

    # ------------------------------------------------------------------
    # Revertir
    # ------------------------------------------------------------------
    def revertir(self, modificacion_id):
        with transaction.atomic():
            modificacion = self.repo.obtener_modificacion(modificacion_id, bloquear=True)
            objetivo, modificados = self._deshacer(modificacion)
            self.repo.eliminar_modificacion(modificacion)

        logger.info(
            "[modificaciones.revertir][done] id=%s tipo=%s intentados=%s revertidos=%s",
            modificacion.id, modificacion.tipo_modificacion, len(objetivo), modificados,
        )
        return ResultadoModificacion(
            modificacion_id=modificacion.id,
            turnos_intentados=len(objetivo),
            turnos_modificados=modificados,
        )

    def _deshacer(self, modificacion):
        """Restaura los turnos del alcance a los valores previos. Devuelve (objetivo, modificados)."""
        alcance = Alcance.de_modificacion(modificacion)
        tipo = alcance.tipo
        turnos = self.repo.turnos_en_alcance(alcance, bloquear=True)

        if tipo.es_bloqueo:
            objetivo = self._turnos_a_desbloquear(modificacion, turnos)
            return objetivo, self._actualizar_lote(modificacion, objetivo, {"bloqueado": False})

        if tipo == TipoModificacion.CAMBIAR_HORA_INICIO:
            # hora_*_actual en None es un valor previo válido (turnos de día completo).
            campos = {"hora_inicio": modificacion.hora_inicio_actual}
            if modificacion.hora_fin_nueva is not None:
                campos["hora_fin"] = modificacion.hora_fin_actual
            return turnos, self._actualizar_lote(modificacion, turnos, campos)

        if modificacion.cupo_actual is None:
            logger.warning(
                "[modificaciones.revertir][skip] Sin cupo_actual capturado. id=%s", modificacion.id
            )
            return turnos, 0
        modificados = sum(
            1
            for turno in turnos
            if self._cambiar_cupo(modificacion, turno, modificacion.cupo_actual, conservar_consumido=True)
        )
        return turnos, modificados

    def _turnos_a_desbloquear(self, modificacion, turnos):
        """Quedan bloqueados los cubiertos por otro bloqueo activo y los de horarios deshabilitados."""
        bloqueados = [t for t in turnos if t.bloqueado]
        cubiertos = self.repo.ids_turnos_con_bloqueo_activo(bloqueados, excluir_id=modificacion.id)
        deshabilitados = self.repo.ids_horarios_deshabilitados({t.horario_id for t in bloqueados})
        return [
            t for t in bloqueados
            if t.id not in cubiertos and t.horario_id not in deshabilitados
        ]

    # ------------------------------------------------------------------
    # Desbloqueo manual
    # ------------------------------------------------------------------
    def desbloquear_turnos(
        self, *, fecha_desde, fecha_hasta, horario_id=None, actividad_id=None, agencia_id=None,
    ):
        if horario_id is None and actividad_id is None and agencia_id is None:
            raise ValidacionError("Se requiere horario_id, actividad_id o agencia_id")
        try:
            desde, hasta = fecha_desde_iso(fecha_desde), fecha_desde_iso(fecha_hasta)
        except (TypeError, ValueError):
            raise ValidacionError("fecha_desde y fecha_hasta son requeridas con formato YYYY-MM-DD")
        if desde > hasta:
            raise ValidacionError("fecha_desde no puede ser posterior a fecha_hasta")

        with transaction.atomic():
            turnos = self.repo.turnos_bloqueados_en_rango(
                desde, hasta,
                horario_id=horario_id, actividad_id=actividad_id, agencia_id=agencia_id,
                bloquear=True,
            )
            desbloqueados = self.repo.actualizar_turnos([t.id for t in turnos], bloqueado=False)

        logger.info(
            "[modificaciones.desbloquear][done] horario_id=%s actividad_id=%s agencia_id=%s "
            "rango=[%s..%s] desbloqueados=%s",
            horario_id, actividad_id, agencia_id, desde, hasta, desbloqueados,
        )
        return {
            "turnos_desbloqueados": desbloqueados,
            "turnos": [t.id for t in turnos],
        }

    # ------------------------------------------------------------------
    # Escritura de turnos
    # ------------------------------------------------------------------
    def _actualizar_lote(self, modificacion, turnos, campos):
        if not turnos:
            return 0
        try:
            return self.repo.actualizar_turnos([t.id for t in turnos], **campos)
        except PersistenciaError:
            logger.warning(
                "[modificaciones.lote][fallback] Falló el UPDATE por lote, se sigue turno por turno. "
                "modificacion_id=%s turnos=%s",
                modificacion.id, len(turnos),
            )

        modificados = 0
        for turno in turnos:
            try:
                if self.repo.actualizar_turno(turno.id, **campos):
                    modificados += 1
            except PersistenciaError:
                logger.warning(
                    "[modificaciones.turno][skip] No se pudo actualizar. modificacion_id=%s turno_id=%s",
                    modificacion.id, turno.id,
                )
        return modificados

    def _cambiar_cupo(self, modificacion, turno, cupo_nuevo, *, conservar_consumido=False):
        """
        Cambia el cupo total de un turno recalculando el disponible desde su consumido.
        Al revertir (`conservar_consumido`) el total nunca queda debajo del consumido.
        """
        consumido = turno.cupo_consumido
        if conservar_consumido:
            cupo_nuevo = max(cupo_nuevo, consumido)
        elif not puede_reducir_cupo(cupo_nuevo, consumido):
            logger.warning(
                "[modificaciones.cupo][skip] Cupo nuevo menor al consumido. modificacion_id=%s "
                "turno_id=%s cupo_nuevo=%s consumido=%s",
                modificacion.id, turno.id, cupo_nuevo, consumido,
            )
            return False

        disponible = recalcular_cupo_disponible(turno.cupo_total, turno.cupo_disponible, cupo_nuevo)
        try:
            ok = self.repo.actualizar_turno(
                turno.id,
                esperado={"cupo_total": turno.cupo_total, "cupo_disponible": turno.cupo_disponible},
                cupo_total=cupo_nuevo,
                cupo_disponible=disponible,
            )
        except PersistenciaError:
            logger.warning(
                "[modificaciones.cupo][skip] No se pudo actualizar. modificacion_id=%s turno_id=%s",
                modificacion.id, turno.id,
            )
            return False

        if not ok:
            logger.warning(
                "[modificaciones.cupo][cas] Turno modificado concurrentemente. modificacion_id=%s turno_id=%s",
                modificacion.id, turno.id,
            )
        return ok


def _entero_o_none(valor):
    if valor in (None, ""):
        return None
    try:
        return int(valor)
    except (TypeError, ValueError):
        raise ValidacionError(f"Valor entero inválido: {valor!r}")


def _verificar_hora_inicio(turnos, hora_inicio_nueva):
    """Sin hora_fin_nueva, la hora de inicio nueva tiene que quedar antes del fin de cada turno."""
    for turno in turnos:
        if turno.hora_fin is not None and hora_inicio_nueva >= turno.hora_fin:
            raise ValidacionError(
                "hora_inicio_nueva debe ser anterior a la hora de fin del turno",
                detalle={
                    "turno_id": turno.id,
                    "hora_inicio_nueva": hora_inicio_nueva.strftime("%H:%M"),
                    "hora_fin": turno.hora_fin.strftime("%H:%M"),
                },
            )


def _alcance_de_campos(campos):
    return Alcance(
        tipo=TipoModificacion(campos["tipo_modificacion"]),
        fecha_desde=campos["fecha_desde"],
        fecha_hasta=campos["fecha_hasta"],
        horario_id=campos.get("horario_id"),
        actividad_id=campos.get("actividad_id"),
        agencia_id=campos.get("agencia_id"),
    )


def aplicar_modificacion_temporaria(datos, repo=None):
    return MotorModificaciones(repo).crear_y_aplicar(datos)


def revertir_modificacion_temporaria(modificacion_id, repo=None):
    return MotorModificaciones(repo).revertir(modificacion_id)
