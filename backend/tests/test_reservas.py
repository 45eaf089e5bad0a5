from datetime import date

import pytest

from apps.turnos_core.exceptions import ConflictoError, NoEncontradoError, ValidacionError
from apps.turnos_core.models import Reserva, Turno
from apps.turnos_core.services.generar_turnos import generar_turnos_desde_horario
from apps.turnos_core.services.reservas import cancelar_reserva, resumen_reservas, retener_cupo


@pytest.fixture
def turno(crear_horario, ventana_corta):
    horario = crear_horario(cupo=3)
    generar_turnos_desde_horario(horario)
    return Turno.objects.get(horario=horario, fecha=date(2024, 1, 3))


def test_retener_cupo_descuenta(turno):
    reserva = retener_cupo(turno.id, 2)

    turno.refresh_from_db()
    assert turno.cupo_disponible == 1
    assert reserva.estado == "hold"
    assert reserva.actividad_id == turno.actividad_id
    assert reserva.agencia_id == turno.agencia_id


def test_retener_sin_cupo_suficiente(turno):
    retener_cupo(turno.id, 2)

    with pytest.raises(ConflictoError) as excinfo:
        retener_cupo(turno.id, 2)

    assert excinfo.value.detalle["cupo_disponible"] == 1
    turno.refresh_from_db()
    assert turno.cupo_disponible == 1
    assert Reserva.objects.count() == 1


def test_retener_en_turno_bloqueado(turno):
    Turno.objects.filter(pk=turno.pk).update(bloqueado=True)

    with pytest.raises(ConflictoError):
        retener_cupo(turno.id, 1)

    assert not Reserva.objects.exists()


@pytest.mark.parametrize("cantidad, estado", [(0, "hold"), (-1, "hold"), (1, "cancelada"), (1, "otro")])
def test_retener_validaciones(turno, cantidad, estado):
    with pytest.raises(ValidacionError):
        retener_cupo(turno.id, cantidad, estado=estado)


def test_retener_turno_inexistente(db):
    with pytest.raises(NoEncontradoError):
        retener_cupo(9999, 1)


def test_cancelar_devuelve_cupo_y_es_idempotente(turno):
    reserva = retener_cupo(turno.id, 2)

    cancelar_reserva(reserva.id)
    cancelar_reserva(reserva.id)

    turno.refresh_from_db()
    assert turno.cupo_disponible == 3
    reserva.refresh_from_db()
    assert reserva.estado == "cancelada"


def test_cancelar_nunca_supera_cupo_total(turno):
    reserva = retener_cupo(turno.id, 2)
    # cupo reducido por fuera del circuito normal
    Turno.objects.filter(pk=turno.pk).update(cupo_total=2, cupo_disponible=1)

    cancelar_reserva(reserva.id)

    turno.refresh_from_db()
    assert (turno.cupo_total, turno.cupo_disponible) == (2, 2)


def test_resumen_reservas(turno):
    retener_cupo(turno.id, 2)

    resumen = resumen_reservas(
        fecha_desde="2024-01-01", fecha_hasta="2024-01-05", horario_id=turno.horario_id
    )

    assert resumen["affected_reservations"] == 1
    assert resumen["total_turnos"] == 3
    assert resumen["turnos_con_reservas"] == [{
        "id": turno.id,
        "fecha": "2024-01-03",
        "hora_inicio": "10:00",
        "cupo_total": 3,
        "cupo_disponible": 1,
        "consumido": 2,
    }]

    por_actividad = resumen_reservas(fecha_desde="2024-01-01", fecha_hasta="2024-01-12", actividad_id=1)
    assert por_actividad["total_turnos"] == 6


def test_resumen_reservas_requiere_referencia(db):
    with pytest.raises(ValidacionError):
        resumen_reservas(fecha_desde="2024-01-01", fecha_hasta="2024-01-05")
