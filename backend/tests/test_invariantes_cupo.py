# Secuencias pseudoaleatorias (semilla fija) de reservas, cancelaciones,
# ediciones de horario y modificaciones temporarias. Después de cada paso:
#   0 <= cupo_disponible <= cupo_total
#   consumido del turno == suma de reservas no canceladas
import random
from datetime import date, time

import pytest

from apps.turnos_core.exceptions import ConflictoError
from apps.turnos_core.models import ModificacionTemporaria, Reserva, Turno
from apps.turnos_core.services.generar_turnos import generar_turnos_desde_horario
from apps.turnos_core.services.modificaciones import MotorModificaciones
from apps.turnos_core.services.reconciliacion import SnapshotHorario, reconciliar_horario
from apps.turnos_core.services.reservas import cancelar_reserva, retener_cupo

HOY = date(2024, 1, 1)
FECHAS = [date(2024, 1, d) for d in range(1, 13)]


def _reservar(rng, horario):
    turnos = list(Turno.objects.filter(horario=horario))
    turno = rng.choice(turnos)
    try:
        retener_cupo(turno.id, rng.randint(1, 3), estado=rng.choice(["hold", "confirmada"]))
    except ConflictoError:
        pass


def _cancelar(rng, horario):
    activas = list(Reserva.objects.exclude(estado="cancelada"))
    if activas:
        cancelar_reserva(rng.choice(activas).id)


def _editar_cupo(rng, horario):
    anterior = SnapshotHorario.de_horario(horario)
    horario.cupo = rng.randint(0, 8)
    horario.save()
    reconciliar_horario(anterior, horario, hoy=HOY)


def _editar_hora(rng, horario):
    anterior = SnapshotHorario.de_horario(horario)
    inicio = rng.choice([8, 10, 14])
    horario.hora_inicio, horario.hora_fin = time(inicio, 0), time(inicio + 1, 0)
    horario.save()
    reconciliar_horario(anterior, horario, hoy=HOY)


def _rango(rng):
    desde = rng.choice(FECHAS)
    hasta = rng.choice([f for f in FECHAS if f >= desde])
    return desde.isoformat(), hasta.isoformat()


def _cambiar_cupos(rng, horario):
    desde, hasta = _rango(rng)
    try:
        MotorModificaciones().crear_y_aplicar({
            "tipo_modificacion": "CAMBIAR_CUPOS",
            "horario_id": horario.id,
            "fecha_desde": desde,
            "fecha_hasta": hasta,
            "nuevos_cupos_totales": rng.randint(0, 9),
        })
    except ConflictoError:
        pass


def _bloquear(rng, horario):
    desde, hasta = _rango(rng)
    try:
        MotorModificaciones().crear_y_aplicar({
            "tipo_modificacion": "BLOQUEAR_HORARIO",
            "horario_id": horario.id,
            "fecha_desde": desde,
            "fecha_hasta": hasta,
        })
    except ConflictoError:
        pass


def _revertir(rng, horario):
    activas = list(ModificacionTemporaria.objects.filter(activo=True))
    if activas:
        MotorModificaciones().revertir(rng.choice(activas).id)


OPERACIONES = [
    _reservar, _reservar, _reservar, _cancelar, _editar_cupo,
    _editar_hora, _cambiar_cupos, _bloquear, _revertir,
]


@pytest.mark.parametrize("semilla", [1, 7, 42])
def test_secuencias_aleatorias_respetan_invariantes(crear_horario, ventana_corta, verificar_invariantes, semilla):
    rng = random.Random(semilla)
    horario = crear_horario(cupo=5)
    generar_turnos_desde_horario(horario)

    for _ in range(40):
        rng.choice(OPERACIONES)(rng, horario)
        verificar_invariantes()

    # siempre queda un turno vivo por fecha del horario
    fechas = list(Turno.objects.filter(horario=horario).values_list("fecha", flat=True))
    assert len(fechas) == len(set(fechas)) == 6


def test_reservas_intercaladas_con_cambios_de_cupo(crear_horario, ventana_corta, verificar_invariantes):
    horario = crear_horario(cupo=4)
    generar_turnos_desde_horario(horario)
    turno = Turno.objects.get(horario=horario, fecha=date(2024, 1, 3))

    retener_cupo(turno.id, 3)
    _editar_cupo(random.Random(0), horario)  # cupo aleatorio en 0..8
    verificar_invariantes()

    turno.refresh_from_db()
    assert turno.cupo_consumido == 3
    assert turno.cupo_total == max(horario.cupo, 3)
