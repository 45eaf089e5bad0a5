# apps/turnos_core/services/calendario.py
# ------------------------------------------------------------------------------
# Utilidades puras de fechas para el motor de turnos.
# - Todo el core trabaja con fechas de calendario en UTC. La conversión a la
#   zona horaria de presentación se hace sólo en la capa de salida.
# - Día de semana en formato ISO del sistema: 0 = domingo ... 6 = sábado.
# ------------------------------------------------------------------------------
from datetime import date, datetime, time, timedelta, timezone as dt_timezone

from django.utils import timezone

FORMATO_FECHA = "%Y-%m-%d"

DIAS_SEMANA = [
    "Domingo",
    "Lunes",
    "Martes",
    "Miércoles",
    "Jueves",
    "Viernes",
    "Sábado",
]


def fecha_desde_iso(valor) -> date:
    """
    Normaliza a `date`:
      - date → se devuelve tal cual.
      - datetime aware → se lleva a UTC y se toma la fecha.
      - datetime naive → se toma la fecha (se asume UTC).
      - str "YYYY-MM-DD" o ISO completo ("YYYY-MM-DDTHH:MM:SS[+HH:MM|Z]").
    """
    if isinstance(valor, datetime):
        if timezone.is_aware(valor):
            valor = valor.astimezone(dt_timezone.utc)
        return valor.date()
    if isinstance(valor, date):
        return valor
    if not valor:
        raise ValueError("Fecha vacía")

    texto = str(valor).strip()
    if len(texto) == 10:
        return datetime.strptime(texto, FORMATO_FECHA).date()
    return fecha_desde_iso(datetime.fromisoformat(texto.replace("Z", "+00:00")))


def formatear_fecha(fecha) -> str:
    return fecha_desde_iso(fecha).strftime(FORMATO_FECHA)


def fecha_en_rango(fecha, inicio, fin) -> bool:
    """True si inicio <= fecha <= fin (inclusivo en ambos extremos)."""
    return fecha_desde_iso(inicio) <= fecha_desde_iso(fecha) <= fecha_desde_iso(fin)


def diferencia_en_dias(fecha1, fecha2) -> int:
    return abs((fecha_desde_iso(fecha2) - fecha_desde_iso(fecha1)).days)


def sumar_dias(fecha, dias: int) -> date:
    return fecha_desde_iso(fecha) + timedelta(days=dias)


def fechas_en_rango(inicio, fin) -> list[date]:
    """Todas las fechas entre inicio y fin (inclusive). Rango invertido → []."""
    desde, hasta = fecha_desde_iso(inicio), fecha_desde_iso(fin)
    fechas = []
    actual = desde
    while actual <= hasta:
        fechas.append(actual)
        actual += timedelta(days=1)
    return fechas


def rangos_se_superponen(inicio1, fin1, inicio2, fin2) -> bool:
    return fecha_desde_iso(inicio1) <= fecha_desde_iso(fin2) and fecha_desde_iso(inicio2) <= fecha_desde_iso(fin1)


def dia_semana_iso(fecha) -> int:
    # date.weekday(): lunes=0 ... domingo=6
    return (fecha_desde_iso(fecha).weekday() + 1) % 7


def hoy_utc() -> date:
    """Fecha actual (sólo día) en UTC. Es el reloj del core."""
    return timezone.now().astimezone(dt_timezone.utc).date()


def parse_hora(valor):
    """Acepta time, 'HH:MM' o 'HH:MM:SS'. Vacío → None."""
    if valor in (None, ""):
        return None
    if isinstance(valor, time):
        return valor
    texto = str(valor).strip()
    formato = "%H:%M" if len(texto) == 5 else "%H:%M:%S"
    try:
        return datetime.strptime(texto, formato).time()
    except ValueError:
        raise ValueError(f"Hora inválida: {valor!r}")
