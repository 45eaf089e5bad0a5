# backend/tests/conftest.py
# Migraciones deshabilitadas vía --no-migrations (pyproject): las tablas se
# crean directo desde los modelos.
from datetime import date, time

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from apps.turnos_core.models import Horario, Reserva, Turno
from apps.turnos_core.services.reservas import retener_cupo

LUNES = date(2024, 1, 1)


@pytest.fixture
def ventana_corta(settings):
    """Ventana de 14 días: Lun/Mié/Vie desde 2024-01-01 → 6 turnos."""
    settings.TURNOS_DIAS_VENTANA_EXPANSION = 14
    return 14


@pytest.fixture
def crear_horario(db):
    def _crear(**kwargs):
        datos = {
            "actividad_id": 1,
            "agencia_id": 1,
            "fecha_inicio": LUNES,
            "dias": [1, 3, 5],
            "dia_completo": False,
            "hora_inicio": time(10, 0),
            "hora_fin": time(11, 0),
            "cupo": 10,
            "habilitada": True,
        }
        datos.update(kwargs)
        return Horario.objects.create(**datos)

    return _crear


@pytest.fixture
def reservar(db):
    def _reservar(turno, cantidad=1, estado="hold"):
        return retener_cupo(turno.id, cantidad, estado=estado)

    return _reservar


@pytest.fixture
def foto_turnos(db):
    """Estado comparable de todos los turnos (vivos y eliminados)."""

    def _foto(**filtros):
        return list(
            Turno.todos.filter(**filtros)
            .order_by("id")
            .values_list(
                "id", "fecha", "hora_inicio", "hora_fin", "cupo_total",
                "cupo_disponible", "bloqueado", "deleted_at",
            )
        )

    return _foto


@pytest.fixture
def verificar_invariantes(db):
    """0 <= disponible <= total en todo turno y consumido == reservas activas."""

    def _verificar():
        for turno in Turno.todos.all():
            assert 0 <= turno.cupo_disponible <= turno.cupo_total, turno
            activas = sum(
                Reserva.objects.filter(turno=turno)
                .exclude(estado="cancelada")
                .values_list("cantidad", flat=True)
            )
            assert turno.cupo_consumido == activas, turno

    return _verificar


@pytest.fixture
def usuario(db):
    User = get_user_model()
    return User.objects.create_user(username="admin", email="admin@example.com", password="pass1234")


@pytest.fixture
def api_client(usuario):
    client = APIClient()
    client.force_authenticate(user=usuario)
    return client
