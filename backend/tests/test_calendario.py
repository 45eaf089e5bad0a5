from datetime import date, datetime, time, timedelta, timezone as dt_timezone

import pytest

from apps.turnos_core.services import calendario
from apps.turnos_core.services.calendario import (
    diferencia_en_dias,
    dia_semana_iso,
    fecha_desde_iso,
    fecha_en_rango,
    fechas_en_rango,
    formatear_fecha,
    hoy_utc,
    parse_hora,
    rangos_se_superponen,
    sumar_dias,
)


@pytest.mark.parametrize(
    "valor, esperado",
    [
        ("2024-01-05", date(2024, 1, 5)),
        ("2024-01-05T10:00:00Z", date(2024, 1, 5)),
        # 23:30 en UTC-3 ya es el día siguiente en UTC
        ("2024-01-05T23:30:00-03:00", date(2024, 1, 6)),
        (date(2024, 2, 29), date(2024, 2, 29)),
        (datetime(2024, 3, 1, 1, 0, tzinfo=dt_timezone(timedelta(hours=3))), date(2024, 2, 29)),
        (datetime(2024, 3, 1, 22, 0), date(2024, 3, 1)),
    ],
)
def test_fecha_desde_iso_normaliza_a_utc(valor, esperado):
    assert fecha_desde_iso(valor) == esperado


@pytest.mark.parametrize("valor", ["", None, "2024-13-01", "no-es-fecha"])
def test_fecha_desde_iso_invalida(valor):
    with pytest.raises(ValueError):
        fecha_desde_iso(valor)


def test_formatear_fecha():
    assert formatear_fecha(date(2024, 1, 5)) == "2024-01-05"
    assert formatear_fecha("2024-01-05T23:30:00-03:00") == "2024-01-06"


def test_fecha_en_rango_inclusivo():
    assert fecha_en_rango("2024-01-01", "2024-01-01", "2024-01-31")
    assert fecha_en_rango("2024-01-31", "2024-01-01", "2024-01-31")
    assert not fecha_en_rango("2024-02-01", "2024-01-01", "2024-01-31")
    assert not fecha_en_rango("2023-12-31", "2024-01-01", "2024-01-31")


def test_diferencia_en_dias_es_absoluta():
    assert diferencia_en_dias("2024-01-01", "2024-01-11") == 10
    assert diferencia_en_dias("2024-01-11", "2024-01-01") == 10
    assert diferencia_en_dias("2024-02-28", "2024-03-01") == 2


def test_sumar_dias():
    assert sumar_dias("2024-12-30", 3) == date(2025, 1, 2)
    assert sumar_dias(date(2024, 1, 1), -1) == date(2023, 12, 31)


def test_fechas_en_rango():
    assert fechas_en_rango("2024-01-30", "2024-02-02") == [
        date(2024, 1, 30),
        date(2024, 1, 31),
        date(2024, 2, 1),
        date(2024, 2, 2),
    ]
    assert fechas_en_rango("2024-01-05", "2024-01-05") == [date(2024, 1, 5)]
    assert fechas_en_rango("2024-01-05", "2024-01-01") == []


@pytest.mark.parametrize(
    "fecha, dia",
    [
        (date(2024, 1, 7), 0),  # domingo
        (date(2024, 1, 1), 1),  # lunes
        (date(2024, 1, 3), 3),
        (date(2024, 1, 6), 6),  # sábado
    ],
)
def test_dia_semana_domingo_es_cero(fecha, dia):
    assert dia_semana_iso(fecha) == dia


def test_rangos_se_superponen():
    assert rangos_se_superponen("2024-01-01", "2024-01-10", "2024-01-10", "2024-01-20")
    assert rangos_se_superponen("2024-01-05", "2024-01-06", "2024-01-01", "2024-01-31")
    assert not rangos_se_superponen("2024-01-01", "2024-01-09", "2024-01-10", "2024-01-20")


def test_hoy_utc_usa_fecha_utc(monkeypatch):
    ahora = datetime(2024, 1, 1, 23, 30, tzinfo=dt_timezone(timedelta(hours=-3)))
    monkeypatch.setattr(calendario.timezone, "now", lambda: ahora)
    assert hoy_utc() == date(2024, 1, 2)


def test_parse_hora():
    assert parse_hora("08:30") == time(8, 30)
    assert parse_hora("08:30:15") == time(8, 30, 15)
    assert parse_hora(time(9, 0)) == time(9, 0)
    assert parse_hora("") is None
    assert parse_hora(None) is None
    with pytest.raises(ValueError, match="Hora inválida"):
        parse_hora("25:00")
