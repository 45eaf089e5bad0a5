# apps/turnos_core/services/generar_turnos.py
# ------------------------------------------------------------------------------
# Generación de turnos a partir de horarios recurrentes (idempotente por SW + DB).
# - Expande el horario en fechas (recurrencia.py)
# - Idempotencia:
#     a) pre-filtra las fechas que ya tienen turno vivo (una sola consulta)
#     b) unique (horario, fecha) WHERE deleted_at IS NULL en la DB
# - El alta es un único bulk_create dentro de una transacción.
# - Logging: total_fechas, ya_existian, a_crear, creados
# ------------------------------------------------------------------------------
import logging
from dataclasses import dataclass, field

from django.db import transaction

from apps.turnos_core.exceptions import NoEncontradoError
from apps.turnos_core.models import Turno
from apps.turnos_core.services.cupos import recalcular_cupo_disponible
from apps.turnos_core.services.recurrencia import expandir_fechas_desde_horario
from apps.turnos_core.services.repositorio import RepositorioTurnos

logger = logging.getLogger(__name__)

MOTIVO_TURNO_EXISTENTE = "Ya existe un turno para esta fecha y horario"


@dataclass(frozen=True)
class TurnoOmitido:
    fecha: object
    horario_id: int
    motivo: str = MOTIVO_TURNO_EXISTENTE

    def as_dict(self):
        return {
            "fecha": self.fecha.isoformat(),
            "horario_id": self.horario_id,
            "motivo": self.motivo,
        }


@dataclass
class ResultadoGeneracion:
    total_fechas: int = 0
    turnos_creados: int = 0
    omitidos: int = 0
    turnos_omitidos: list = field(default_factory=list)

    def acumular(self, otro):
        self.total_fechas += otro.total_fechas
        self.turnos_creados += otro.turnos_creados
        self.omitidos += otro.omitidos
        self.turnos_omitidos.extend(otro.turnos_omitidos)
        return self

    def as_dict(self):
        return {
            "total_fechas": self.total_fechas,
            "turnos_creados": self.turnos_creados,
            "omitidos": self.omitidos,
            "turnos_omitidos": [t.as_dict() for t in self.turnos_omitidos],
        }


class GeneradorTurnos:
    def __init__(self, repo=None):
        self.repo = repo or RepositorioTurnos()

    def generar(self, horario):
        """
        Genera los turnos faltantes de un horario dentro de la ventana de expansión.

        - Horario deshabilitado o sin días → resultado vacío (no es error).
        - Fechas con turno vivo → se informan como omitidas.
        - Cualquier error de persistencia aborta sin dejar turnos a medias.
        """
        fechas = expandir_fechas_desde_horario(horario)
        resultado = ResultadoGeneracion(total_fechas=len(fechas))
        if not fechas:
            logger.info(
                "[turnos.generar][skip] Sin fechas para generar. horario_id=%s habilitada=%s dias=%s",
                horario.id, horario.habilitada, horario.dias,
            )
            return resultado

        with transaction.atomic():
            existentes = self.repo.fechas_existentes(horario.id, fechas)
            a_crear = [f for f in fechas if f not in existentes]

            resultado.turnos_omitidos = [
                TurnoOmitido(fecha=f, horario_id=horario.id)
                for f in fechas
                if f in existentes
            ]
            resultado.omitidos = len(resultado.turnos_omitidos)

            if a_crear:
                cupo_disponible = recalcular_cupo_disponible(0, 0, horario.cupo)
                nuevos = [
                    Turno(
                        horario_id=horario.id,
                        actividad_id=horario.actividad_id,
                        agencia_id=horario.agencia_id,
                        fecha=f,
                        hora_inicio=None if horario.dia_completo else horario.hora_inicio,
                        hora_fin=None if horario.dia_completo else horario.hora_fin,
                        cupo_total=horario.cupo,
                        cupo_disponible=cupo_disponible,
                        bloqueado=False,
                    )
                    for f in a_crear
                ]
                creados = self.repo.crear_turnos(nuevos)
                resultado.turnos_creados = len(creados)

        logger.info(
            "[turnos.generar][done] horario_id=%s total_fechas=%s ya_existian=%s a_crear=%s creados=%s",
            horario.id, resultado.total_fechas, resultado.omitidos, len(a_crear), resultado.turnos_creados,
        )
        return resultado

    def generar_para_actividad(self, actividad_id):
        """
        Genera para todos los horarios habilitados de la actividad.
        Falla rápido: el primer error aborta y revierte lo generado en la corrida.
        """
        total = ResultadoGeneracion()
        with transaction.atomic():
            horarios = self.repo.horarios_habilitados(actividad_id=actividad_id)
            for horario in horarios:
                total.acumular(self.generar(horario))

        logger.info(
            "[turnos.generar_actividad][done] actividad_id=%s horarios=%s creados=%s omitidos=%s",
            actividad_id, len(horarios), total.turnos_creados, total.omitidos,
        )
        return total

    def regenerar_horario(self, horario_id):
        """Regeneración a demanda de un horario habilitado."""
        horario = self.repo.obtener_horario(horario_id)
        if not horario.habilitada:
            raise NoEncontradoError(
                "El horario no existe o no está habilitado",
                detalle={"horario_id": horario_id},
            )
        return self.generar(horario)


def generar_turnos_desde_horario(horario, repo=None):
    return GeneradorTurnos(repo).generar(horario)


def generar_turnos_desde_actividad(actividad_id, repo=None):
    return GeneradorTurnos(repo).generar_para_actividad(actividad_id)


def regenerar_turnos_de_horario(horario_id, repo=None):
    return GeneradorTurnos(repo).regenerar_horario(horario_id)
