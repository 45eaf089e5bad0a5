# apps/turnos_core/services/cupos.py
# ------------------------------------------------------------------------------
# Aritmética de cupos compartida por generación, reconciliación, modificaciones
# temporarias y el circuito de reservas. Es el ÚNICO lugar con esta cuenta.
#
#   consumido  = cupo_total - cupo_disponible
#   disponible = clamp(cupo_total_nuevo - consumido, 0, cupo_total_nuevo)
# ------------------------------------------------------------------------------


def cupo_consumido(cupo_total: int, cupo_disponible: int) -> int:
    return max(0, int(cupo_total) - int(cupo_disponible))


def recalcular_cupo_disponible(
    cupo_total_anterior: int,
    cupo_disponible_anterior: int,
    cupo_total_nuevo: int,
) -> int:
    if cupo_total_nuevo < 0:
        raise ValueError(f"cupo_total_nuevo negativo: {cupo_total_nuevo}")
    consumido = cupo_consumido(cupo_total_anterior, cupo_disponible_anterior)
    return max(0, min(cupo_total_nuevo - consumido, cupo_total_nuevo))


def puede_reducir_cupo(cupo_total_nuevo: int, consumido: int) -> bool:
    return cupo_total_nuevo >= consumido
