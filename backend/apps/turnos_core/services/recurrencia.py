# apps/turnos_core/services/recurrencia.py
# ------------------------------------------------------------------------------
# Expansión de un horario recurrente semanal en fechas concretas.
# - Ventana: [fecha_inicio, fecha_inicio + TURNOS_DIAS_VENTANA_EXPANSION)
# - Sin estado interno: cada llamada recalcula la secuencia completa.
# ------------------------------------------------------------------------------
from datetime import timedelta

from django.conf import settings

from apps.turnos_core.services.calendario import dia_semana_iso, fecha_desde_iso

DIAS_VENTANA_EXPANSION_DEFAULT = 365


def dias_ventana_expansion() -> int:
    """Se lee en cada llamada para respetar overrides de settings/env."""
    return int(getattr(settings, "TURNOS_DIAS_VENTANA_EXPANSION", DIAS_VENTANA_EXPANSION_DEFAULT))


def expandir_fechas_desde_horario(horario, dias_ventana=None):
    """
    Devuelve las fechas en que aplica el horario.

    - Horario deshabilitado → [] (política, no error).
    - `dias` vacío → [].
    - Límite superior exclusivo: fecha_inicio + dias_ventana no se incluye.
    """
    if not horario.habilitada:
        return []

    dias = {int(d) for d in (horario.dias or [])}
    if not dias:
        return []

    ventana = dias_ventana_expansion() if dias_ventana is None else int(dias_ventana)
    fecha_inicio = fecha_desde_iso(horario.fecha_inicio)
    fecha_fin = fecha_inicio + timedelta(days=ventana)

    fechas = []
    actual = fecha_inicio
    while actual < fecha_fin:
        if dia_semana_iso(actual) in dias:
            fechas.append(actual)
        actual += timedelta(days=1)
    return fechas
