from datetime import date

from apps.turnos_core.exceptions import PersistenciaError
from apps.turnos_core.models import Horario, Turno
from apps.turnos_core.services.eventos import (
    MENSAJE_ERROR_GENERACION,
    handle_actividad_creada,
    handle_actividad_eliminada,
    handle_horario_actualizado,
    handle_horario_creado,
    handle_horario_eliminado,
)
from apps.turnos_core.services.reconciliacion import SnapshotHorario
from apps.turnos_core.services.repositorio import RepositorioTurnos


class RepoSinEscritura(RepositorioTurnos):
    def crear_turnos(self, turnos):
        raise PersistenciaError("Error de base de datos en crear_turnos")


class RepoSinBaja(RepositorioTurnos):
    def soft_delete_turnos_intactos(self, turno_ids):
        raise PersistenciaError("Error de base de datos en soft_delete_turnos_intactos")


def test_horario_creado_genera_turnos(crear_horario, ventana_corta):
    horario = crear_horario()

    evento = handle_horario_creado(horario)

    assert evento["success"] is True
    assert evento["turnos_creados"] == 6
    assert evento["omitidos"] == 0
    assert Turno.objects.filter(horario=horario).count() == 6


def test_horario_creado_con_error_no_deja_turnos(crear_horario, ventana_corta):
    horario = crear_horario()

    evento = handle_horario_creado(horario, repo=RepoSinEscritura())

    assert evento == {"success": False, "error": MENSAJE_ERROR_GENERACION}
    assert not Turno.todos.exists()


def test_actividad_creada(crear_horario, ventana_corta):
    crear_horario(dias=[1])
    crear_horario(dias=[3])

    evento = handle_actividad_creada(1)

    assert evento["success"] is True
    assert evento["turnos_creados"] == 4


def test_actividad_creada_con_error(crear_horario, ventana_corta):
    crear_horario(dias=[1])

    evento = handle_actividad_creada(1, repo=RepoSinEscritura())

    assert evento["success"] is False
    assert not Turno.todos.exists()


def test_horario_actualizado(crear_horario, ventana_corta):
    horario = crear_horario()
    handle_horario_creado(horario)
    anterior = SnapshotHorario.de_horario(horario)
    horario.cupo = 12
    horario.save()

    evento = handle_horario_actualizado(anterior, horario, hoy=date(2024, 1, 1))

    assert evento["success"] is True
    assert evento["accion"] == "propagar_cupo"
    assert evento["cupos_actualizados"] == 6
    assert evento["generacion"] is None


def test_horario_eliminado(crear_horario, ventana_corta, reservar):
    horario = crear_horario()
    handle_horario_creado(horario)
    reservar(Turno.objects.get(horario=horario, fecha=date(2024, 1, 5)), 1)
    horario.soft_delete()

    evento = handle_horario_eliminado(horario, hoy=date(2024, 1, 1))

    assert evento["success"] is True
    assert evento["accion"] == "baja"
    assert evento["turnos_eliminados"] == 5
    assert evento["turnos_bloqueados"] == 1
    assert list(Turno.objects.filter(horario=horario).values_list("fecha", "bloqueado")) == [
        (date(2024, 1, 5), True)
    ]


def test_actividad_eliminada(crear_horario, ventana_corta, reservar):
    con_reserva = crear_horario(dias=[1])
    otro = crear_horario(dias=[3])
    ajeno = crear_horario(actividad_id=2, dias=[5])
    for horario in (con_reserva, otro, ajeno):
        handle_horario_creado(horario)
    reservar(Turno.objects.get(horario=con_reserva, fecha=date(2024, 1, 8)), 1)

    evento = handle_actividad_eliminada(1, hoy=date(2024, 1, 1))

    assert evento == {
        "success": True,
        "actividad_id": 1,
        "horarios_eliminados": 2,
        "turnos_eliminados": 3,
        "turnos_bloqueados": 1,
    }
    assert not Horario.objects.filter(actividad_id=1).exists()
    assert list(Turno.objects.filter(actividad_id=1).values_list("fecha", "bloqueado")) == [
        (date(2024, 1, 8), True)
    ]
    assert Turno.objects.filter(horario=ajeno).count() == 2


def test_actividad_eliminada_con_error_no_cambia_nada(crear_horario, ventana_corta, foto_turnos):
    handle_horario_creado(crear_horario())
    antes = foto_turnos()

    evento = handle_actividad_eliminada(1, repo=RepoSinBaja(), hoy=date(2024, 1, 1))

    assert evento["success"] is False
    assert foto_turnos() == antes
    assert Horario.objects.filter(actividad_id=1).exists()
