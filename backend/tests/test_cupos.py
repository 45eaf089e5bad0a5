import pytest

from apps.turnos_core.services.cupos import (
    cupo_consumido,
    puede_reducir_cupo,
    recalcular_cupo_disponible,
)


@pytest.mark.parametrize(
    "total_anterior, disponible_anterior, total_nuevo, esperado",
    [
        (10, 10, 15, 15),  # sin reservas: todo disponible
        (10, 7, 15, 12),   # 3 consumidos se conservan
        (10, 7, 5, 2),
        (10, 7, 3, 0),     # nuevo == consumido
        (10, 7, 2, 0),     # nuevo < consumido: nunca negativo
        (10, 0, 0, 0),
    ],
)
def test_recalcular_cupo_disponible(total_anterior, disponible_anterior, total_nuevo, esperado):
    disponible = recalcular_cupo_disponible(total_anterior, disponible_anterior, total_nuevo)
    assert disponible == esperado
    assert 0 <= disponible <= total_nuevo


def test_recalcular_cupo_negativo_falla():
    with pytest.raises(ValueError):
        recalcular_cupo_disponible(10, 10, -1)


def test_cupo_consumido():
    assert cupo_consumido(10, 7) == 3
    assert cupo_consumido(10, 10) == 0
    assert cupo_consumido(5, 8) == 0


def test_puede_reducir_cupo():
    assert puede_reducir_cupo(5, 3)
    assert puede_reducir_cupo(3, 3)
    assert not puede_reducir_cupo(2, 3)
