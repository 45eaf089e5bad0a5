# apps/turnos_core/services/repositorio.py
# ------------------------------------------------------------------------------
# Puerto de persistencia del motor de turnos.
# - Todas las consultas que usan los servicios pasan por acá; cada servicio lo
#   recibe en el constructor (o usa una instancia por defecto).
# - "Excluir eliminados" lo resuelve el manager por defecto de cada modelo
#   (SoftDeleteQuerySet.activos()); acá no se repite el filtro.
# - Errores de DB → PersistenciaError con contexto de la operación (logueado).
# - Las escrituras por turno corren en un savepoint propio: si una falla, la
#   transacción exterior sigue usable y el loop puede continuar.
# ------------------------------------------------------------------------------
import logging
from dataclasses import dataclass
from datetime import date
from functools import wraps
from typing import Optional

from django.db import DatabaseError, transaction
from django.db.models import F, Q
from django.db.models.functions import Least
from django.utils import timezone

from apps.turnos_core.exceptions import NoEncontradoError, PersistenciaError
from apps.turnos_core.models import (
    Horario,
    ModificacionTemporaria,
    Reserva,
    TipoModificacion,
    Turno,
)

logger = logging.getLogger(__name__)


def _persistencia(operacion):
    """Traduce DatabaseError → PersistenciaError, logueando la operación y sus argumentos."""

    def deco(fn):
        @wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except DatabaseError as exc:
                logger.exception(
                    "[turnos.repo][error] op=%s args=%s kwargs=%s", operacion, args, kwargs
                )
                raise PersistenciaError(
                    f"Error de base de datos en {operacion}",
                    detalle={"operacion": operacion},
                ) from exc

        return wrapper

    return deco


@dataclass(frozen=True)
class Alcance:
    """
    Conjunto de turnos afectado por una modificación temporaria:
    referencia según el tipo + rango de fechas inclusivo.
    """

    tipo: TipoModificacion
    fecha_desde: date
    fecha_hasta: date
    horario_id: Optional[int] = None
    actividad_id: Optional[int] = None
    agencia_id: Optional[int] = None

    @classmethod
    def de_modificacion(cls, modificacion):
        return cls(
            tipo=TipoModificacion(modificacion.tipo_modificacion),
            fecha_desde=modificacion.fecha_desde,
            fecha_hasta=modificacion.fecha_hasta,
            horario_id=modificacion.horario_id,
            actividad_id=modificacion.actividad_id,
            agencia_id=modificacion.agencia_id,
        )

    @property
    def referencia(self):
        return getattr(self, self.tipo.campo_referencia)

    def filtro_referencia(self):
        return Q(**{self.tipo.campo_referencia: self.referencia})

    def as_dict(self):
        return {
            "tipo": self.tipo.value,
            self.tipo.campo_referencia: self.referencia,
            "fecha_desde": self.fecha_desde.isoformat(),
            "fecha_hasta": self.fecha_hasta.isoformat(),
        }


class RepositorioTurnos:
    # ------------------------------------------------------------------
    # Horarios
    # ------------------------------------------------------------------
    @_persistencia("obtener_horario")
    def obtener_horario(self, horario_id, *, bloquear=False):
        qs = Horario.objects.all()
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        horario = qs.filter(pk=horario_id).first()
        if horario is None:
            raise NoEncontradoError(
                "Horario no encontrado", detalle={"horario_id": horario_id}
            )
        return horario

    @_persistencia("horarios_habilitados")
    def horarios_habilitados(self, *, actividad_id=None):
        qs = Horario.objects.filter(habilitada=True)
        if actividad_id is not None:
            qs = qs.filter(actividad_id=actividad_id)
        return list(qs.order_by("id"))

    @_persistencia("horarios_de_actividad")
    def horarios_de_actividad(self, actividad_id, *, bloquear=False):
        qs = Horario.objects.filter(actividad_id=actividad_id)
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        return list(qs.order_by("id"))

    @_persistencia("soft_delete_horarios")
    def soft_delete_horarios(self, horario_ids):
        if not horario_ids:
            return 0
        return Horario.objects.filter(id__in=list(horario_ids)).soft_delete()

    @_persistencia("horarios_deshabilitados")
    def ids_horarios_deshabilitados(self, horario_ids):
        return set(
            Horario.todos.filter(id__in=set(horario_ids))
            .filter(Q(habilitada=False) | Q(deleted_at__isnull=False))
            .values_list("id", flat=True)
        )

    # ------------------------------------------------------------------
    # Turnos: generación
    # ------------------------------------------------------------------
    @_persistencia("fechas_existentes")
    def fechas_existentes(self, horario_id, fechas):
        if not fechas:
            return set()
        return set(
            Turno.objects.filter(horario_id=horario_id, fecha__in=list(fechas))
            .values_list("fecha", flat=True)
        )

    @_persistencia("crear_turnos")
    def crear_turnos(self, turnos):
        if not turnos:
            return []
        return Turno.objects.bulk_create(turnos, batch_size=500)

    @_persistencia("crear_turno")
    def crear_turno(self, **campos):
        return Turno.objects.create(**campos)

    # ------------------------------------------------------------------
    # Turnos: lectura
    # ------------------------------------------------------------------
    @_persistencia("obtener_turno")
    def obtener_turno(self, turno_id, *, bloquear=False):
        qs = Turno.objects.all()
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        turno = qs.filter(pk=turno_id).first()
        if turno is None:
            raise NoEncontradoError("Turno no encontrado", detalle={"turno_id": turno_id})
        return turno

    @_persistencia("turnos_de_horario")
    def turnos_de_horario(self, horario_id, *, desde=None, bloquear=False):
        qs = Turno.objects.filter(horario_id=horario_id)
        if desde is not None:
            qs = qs.filter(fecha__gte=desde)
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        return list(qs.order_by("fecha", "id"))

    @_persistencia("turnos_de_horario_en_rango")
    def turnos_de_horario_en_rango(self, horario_id, fecha_desde, fecha_hasta):
        return list(
            Turno.objects.filter(
                horario_id=horario_id, fecha__gte=fecha_desde, fecha__lte=fecha_hasta
            ).order_by("fecha", "id")
        )

    @_persistencia("turnos_por_ids")
    def turnos_por_ids(self, turno_ids, *, bloquear=False):
        qs = Turno.objects.filter(id__in=list(turno_ids))
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        return list(qs.order_by("fecha", "id"))

    def _turnos_alcance_qs(self, alcance):
        return Turno.objects.filter(
            alcance.filtro_referencia(),
            fecha__gte=alcance.fecha_desde,
            fecha__lte=alcance.fecha_hasta,
        )

    @_persistencia("turnos_en_alcance")
    def turnos_en_alcance(self, alcance, *, bloquear=False, solo_bloqueados=False):
        qs = self._turnos_alcance_qs(alcance)
        if solo_bloqueados:
            qs = qs.filter(bloqueado=True)
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        return list(qs.order_by("fecha", "hora_inicio", "id"))

    @_persistencia("turnos_bloqueados_en_rango")
    def turnos_bloqueados_en_rango(
        self, fecha_desde, fecha_hasta, *, horario_id=None, actividad_id=None,
        agencia_id=None, bloquear=False,
    ):
        qs = Turno.objects.filter(
            bloqueado=True, fecha__gte=fecha_desde, fecha__lte=fecha_hasta
        )
        if horario_id is not None:
            qs = qs.filter(horario_id=horario_id)
        if actividad_id is not None:
            qs = qs.filter(actividad_id=actividad_id)
        if agencia_id is not None:
            qs = qs.filter(agencia_id=agencia_id)
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        return list(qs.order_by("fecha", "id"))

    # ------------------------------------------------------------------
    # Turnos: escritura
    # ------------------------------------------------------------------
    @_persistencia("actualizar_turno")
    def actualizar_turno(self, turno_id, *, esperado=None, **campos):
        """
        UPDATE de un turno. Con `esperado` se comporta como compare-and-swap:
        sólo escribe si las columnas siguen teniendo esos valores.
        Devuelve True si escribió la fila.
        """
        campos.setdefault("actualizado_en", timezone.now())
        with transaction.atomic():
            qs = Turno.objects.filter(pk=turno_id)
            if esperado:
                qs = qs.filter(**esperado)
            return qs.update(**campos) == 1

    @_persistencia("actualizar_turnos")
    def actualizar_turnos(self, turno_ids, **campos):
        if not turno_ids:
            return 0
        campos.setdefault("actualizado_en", timezone.now())
        with transaction.atomic():
            return Turno.objects.filter(id__in=list(turno_ids)).update(**campos)

    @_persistencia("soft_delete_turnos_intactos")
    def soft_delete_turnos_intactos(self, turno_ids):
        """Soft delete condicionado: sólo turnos que siguen sin cupo consumido."""
        if not turno_ids:
            return 0
        return (
            Turno.objects.filter(id__in=list(turno_ids), cupo_disponible=F("cupo_total"))
            .soft_delete()
        )

    @_persistencia("bloquear_turnos_desde")
    def bloquear_turnos_desde(self, horario_id, desde):
        return Turno.objects.filter(
            horario_id=horario_id, fecha__gte=desde, bloqueado=False
        ).update(bloqueado=True, actualizado_en=timezone.now())

    # ------------------------------------------------------------------
    # Reservas
    # ------------------------------------------------------------------
    @_persistencia("contar_reservas_en_conflicto")
    def contar_reservas_en_conflicto(self, alcance):
        """
        Reservas que impiden aplicar una modificación:
          - BLOQUEAR_TODAS: sólo reservas retenidas (hold) de la agencia.
          - Resto: cualquier reserva no cancelada en los turnos del alcance.
        """
        qs = Reserva.objects.filter(turno__in=self._turnos_alcance_qs(alcance))
        if alcance.tipo == TipoModificacion.BLOQUEAR_TODAS:
            qs = qs.filter(estado="hold")
        else:
            qs = qs.exclude(estado="cancelada")
        return qs.count()

    @_persistencia("descontar_cupo")
    def descontar_cupo(self, turno_id, cantidad):
        """Decremento condicional: no baja de 0 ni toca turnos bloqueados."""
        return Turno.objects.filter(
            pk=turno_id, bloqueado=False, cupo_disponible__gte=cantidad
        ).update(
            cupo_disponible=F("cupo_disponible") - cantidad,
            actualizado_en=timezone.now(),
        ) == 1

    @_persistencia("devolver_cupo")
    def devolver_cupo(self, turno_id, cantidad):
        return Turno.todos.filter(pk=turno_id).update(
            cupo_disponible=Least(F("cupo_disponible") + cantidad, F("cupo_total")),
            actualizado_en=timezone.now(),
        ) == 1

    @_persistencia("crear_reserva")
    def crear_reserva(self, turno, cantidad, estado):
        return Reserva.objects.create(
            turno=turno,
            actividad_id=turno.actividad_id,
            agencia_id=turno.agencia_id,
            cantidad=cantidad,
            estado=estado,
        )

    @_persistencia("obtener_reserva")
    def obtener_reserva(self, reserva_id, *, bloquear=False):
        qs = Reserva.objects.all()
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        reserva = qs.filter(pk=reserva_id).first()
        if reserva is None:
            raise NoEncontradoError("Reserva no encontrada", detalle={"reserva_id": reserva_id})
        return reserva

    @_persistencia("cambiar_estado_reserva")
    def cambiar_estado_reserva(self, reserva, estado):
        reserva.estado = estado
        reserva.save(update_fields=["estado", "actualizado_en"])
        return reserva

    # ------------------------------------------------------------------
    # Modificaciones temporarias
    # ------------------------------------------------------------------
    @_persistencia("crear_modificacion")
    def crear_modificacion(self, **campos):
        return ModificacionTemporaria.objects.create(**campos)

    @_persistencia("obtener_modificacion")
    def obtener_modificacion(self, modificacion_id, *, bloquear=False):
        qs = ModificacionTemporaria.objects.all()
        if bloquear:
            qs = qs.select_for_update(of=("self",))
        modificacion = qs.filter(pk=modificacion_id).first()
        if modificacion is None:
            raise NoEncontradoError(
                "Modificación no encontrada", detalle={"modificacion_id": modificacion_id}
            )
        return modificacion

    @_persistencia("modificaciones_superpuestas")
    def modificaciones_superpuestas(self, alcance, *, excluir_id=None):
        """Modificaciones activas del mismo tipo y referencia con rango solapado."""
        qs = ModificacionTemporaria.objects.filter(
            alcance.filtro_referencia(),
            activo=True,
            tipo_modificacion=alcance.tipo,
            fecha_desde__lte=alcance.fecha_hasta,
            fecha_hasta__gte=alcance.fecha_desde,
        )
        if excluir_id is not None:
            qs = qs.exclude(pk=excluir_id)
        return list(qs.order_by("fecha_desde", "id"))

    @_persistencia("bloqueos_activos")
    def bloqueos_activos(self, fecha_desde, fecha_hasta, *, excluir_id=None):
        """Modificaciones de bloqueo activas que se solapan con el rango."""
        tipos = [t for t in TipoModificacion if t.es_bloqueo]
        qs = ModificacionTemporaria.objects.filter(
            activo=True,
            tipo_modificacion__in=tipos,
            fecha_desde__lte=fecha_hasta,
            fecha_hasta__gte=fecha_desde,
        )
        if excluir_id is not None:
            qs = qs.exclude(pk=excluir_id)
        return list(qs)

    def ids_turnos_con_bloqueo_activo(self, turnos, *, excluir_id=None):
        """Ids de los turnos cubiertos por alguna modificación de bloqueo activa."""
        turnos = list(turnos)
        if not turnos:
            return set()
        fechas = [t.fecha for t in turnos]
        bloqueos = self.bloqueos_activos(min(fechas), max(fechas), excluir_id=excluir_id)
        cubiertos = set()
        for turno in turnos:
            for bloqueo in bloqueos:
                campo = TipoModificacion(bloqueo.tipo_modificacion).campo_referencia
                if (
                    getattr(turno, campo) == getattr(bloqueo, campo)
                    and bloqueo.fecha_desde <= turno.fecha <= bloqueo.fecha_hasta
                ):
                    cubiertos.add(turno.id)
                    break
        return cubiertos

    @_persistencia("modificaciones_activas_de_horario")
    def modificaciones_activas_de_horario(
        self, horario_id, desde=None, *, tipo=TipoModificacion.CAMBIAR_CUPOS
    ):
        """Modificaciones activas de un horario (por tipo) que siguen vigentes desde `desde`."""
        qs = ModificacionTemporaria.objects.filter(
            tipo_modificacion=tipo, horario_id=horario_id, activo=True
        )
        if desde is not None:
            qs = qs.filter(fecha_hasta__gte=desde)
        return list(qs.order_by("fecha_desde", "id"))

    @_persistencia("modificaciones_de_horario_en_rango")
    def modificaciones_de_horario_en_rango(self, horario_id, fecha_desde, fecha_hasta):
        """Modificaciones activas del horario contenidas en el rango."""
        return list(
            ModificacionTemporaria.objects.filter(
                horario_id=horario_id,
                activo=True,
                fecha_desde__gte=fecha_desde,
                fecha_hasta__lte=fecha_hasta,
            ).order_by("fecha_desde", "id")
        )

    @_persistencia("actualizar_modificacion")
    def actualizar_modificacion(self, modificacion, **campos):
        for campo, valor in campos.items():
            setattr(modificacion, campo, valor)
        modificacion.save(update_fields=[*campos.keys(), "actualizado_en"])
        return modificacion

    @_persistencia("eliminar_modificacion")
    def eliminar_modificacion(self, modificacion):
        modificacion.activo = False
        modificacion.soft_delete(campos_extra=["activo"])
        return modificacion
