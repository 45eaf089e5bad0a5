from datetime import time, timedelta

import pytest
from rest_framework.test import APIClient

from apps.turnos_core.models import Horario, ModificacionTemporaria, Turno
from apps.turnos_core.services.calendario import hoy_utc
from apps.turnos_core.services.reservas import retener_cupo


@pytest.fixture
def payload_horario():
    return {
        "actividad_id": 1,
        "agencia_id": 1,
        "fecha_inicio": hoy_utc().isoformat(),
        "dias": [0, 1, 2, 3, 4, 5, 6],
        "dia_completo": False,
        "hora_inicio": "10:00",
        "hora_fin": "11:00",
        "cupo": 10,
        "habilitada": True,
    }


@pytest.fixture
def horario_api(api_client, payload_horario, ventana_corta):
    res = api_client.post("/api/horarios/", payload_horario, format="json")
    assert res.status_code == 201, res.data
    return Horario.objects.get(pk=res.data["id"])


def _rango(desde_dias=0, hasta_dias=6):
    hoy = hoy_utc()
    return (hoy + timedelta(days=desde_dias)).isoformat(), (hoy + timedelta(days=hasta_dias)).isoformat()


def test_requiere_autenticacion(db):
    res = APIClient().get("/api/turnos/")
    assert res.status_code == 401


def test_crear_horario_genera_turnos(api_client, payload_horario, ventana_corta):
    res = api_client.post("/api/horarios/", payload_horario, format="json")

    assert res.status_code == 201, res.data
    assert res.data["turnos"]["success"] is True
    assert res.data["turnos"]["turnos_creados"] == 14
    assert Turno.objects.filter(horario_id=res.data["id"]).count() == 14


@pytest.mark.parametrize(
    "cambios",
    [
        {"dias": [7]},
        {"hora_inicio": None},
        {"hora_inicio": "12:00", "hora_fin": "11:00"},
    ],
)
def test_crear_horario_invalido(api_client, payload_horario, cambios):
    payload_horario.update(cambios)

    res = api_client.post("/api/horarios/", payload_horario, format="json")

    assert res.status_code == 400
    assert not Horario.objects.exists()


def test_dias_se_normalizan(api_client, payload_horario, ventana_corta):
    payload_horario["dias"] = [5, 1, 5, 3]

    res = api_client.post("/api/horarios/", payload_horario, format="json")

    assert res.status_code == 201
    assert res.data["dias"] == [1, 3, 5]


def test_listar_turnos_con_filtros(api_client, horario_api):
    desde, hasta = _rango(0, 2)

    res = api_client.get("/api/turnos/", {"horario": horario_api.id})
    assert res.status_code == 200
    assert res.data["count"] == 14

    res = api_client.get("/api/turnos/", {"horario": horario_api.id, "desde": desde, "hasta": hasta})
    assert res.data["count"] == 3

    turno = Turno.objects.filter(horario=horario_api).order_by("fecha").first()
    retener_cupo(turno.id, 2)
    res = api_client.get("/api/turnos/", {"con_reservas": "true"})
    assert [t["id"] for t in res.data["results"]] == [turno.id]
    assert res.data["results"][0]["cupo_consumido"] == 2


def test_editar_cupo_propaga(api_client, horario_api):
    res = api_client.patch(f"/api/horarios/{horario_api.id}/", {"cupo": 15}, format="json")

    assert res.status_code == 200, res.data
    assert res.data["turnos"]["accion"] == "propagar_cupo"
    assert set(Turno.objects.filter(horario=horario_api).values_list("cupo_total", flat=True)) == {15}


def test_editar_horas_regenera_y_conserva_reservas(api_client, horario_api):
    turno = Turno.objects.filter(horario=horario_api).order_by("fecha").last()
    retener_cupo(turno.id, 1)

    res = api_client.patch(
        f"/api/horarios/{horario_api.id}/", {"hora_inicio": "16:00", "hora_fin": "17:00"}, format="json"
    )

    assert res.status_code == 200, res.data
    assert res.data["turnos"]["accion"] == "regenerar"
    assert res.data["turnos"]["turnos_parcheados"] == 1
    turno.refresh_from_db()
    assert turno.deleted_at is None
    assert turno.hora_inicio.strftime("%H:%M") == "16:00"
    assert Turno.objects.filter(horario=horario_api).count() == 14


def test_eliminar_horario(api_client, horario_api):
    res = api_client.delete(f"/api/horarios/{horario_api.id}/")

    assert res.status_code == 200
    assert res.data["turnos"]["turnos_eliminados"] == 14
    assert not Horario.objects.filter(pk=horario_api.id).exists()
    assert not Turno.objects.filter(horario_id=horario_api.id).exists()


def test_generar_turnos_es_idempotente(api_client, horario_api):
    res = api_client.post("/api/turnos/generar/", {"horario_id": horario_api.id}, format="json")

    assert res.status_code == 200
    assert res.data["turnos_creados"] == 0
    assert res.data["omitidos"] == 14
    assert "trace_id" in res.data

    res = api_client.post("/api/turnos/generar/", {"actividad_id": 1}, format="json")
    assert res.status_code == 200
    assert res.data["turnos_creados"] == 0


def test_generar_turnos_payload_invalido(api_client, horario_api):
    res = api_client.post("/api/turnos/generar/", {}, format="json")
    assert res.status_code == 400

    res = api_client.post("/api/turnos/generar/", {"horario_id": 9999}, format="json")
    assert res.status_code == 404
    assert res.data["code"] == "no_encontrado"


def test_crear_y_revertir_modificacion(api_client, horario_api):
    desde, hasta = _rango(0, 2)
    res = api_client.post("/api/modificaciones/", {
        "tipo_modificacion": "BLOQUEAR_HORARIO",
        "horario_id": horario_api.id,
        "fecha_desde": desde,
        "fecha_hasta": hasta,
        "motivo": "Feriado",
    }, format="json")

    assert res.status_code == 201, res.data
    assert res.data["turnos_modificados"] == 3
    assert "warning" not in res.data
    assert res.data["data"]["horario_id"] == horario_api.id
    modificacion_id = res.data["modificacion_id"]

    res = api_client.get("/api/modificaciones/", {"tipo": "BLOQUEAR_HORARIO"})
    assert res.data["count"] == 1

    res = api_client.delete(f"/api/modificaciones/{modificacion_id}/")
    assert res.status_code == 200
    assert res.data["reversion"]["turnos_modificados"] == 3
    assert not Turno.objects.filter(bloqueado=True).exists()
    assert api_client.get("/api/modificaciones/").data["count"] == 0


def test_modificacion_con_reservas_devuelve_409(api_client, horario_api):
    desde, hasta = _rango(0, 2)
    turno = Turno.objects.filter(horario=horario_api).order_by("fecha").first()
    retener_cupo(turno.id, 1)

    res = api_client.post("/api/modificaciones/", {
        "tipo_modificacion": "BLOQUEAR_HORARIO",
        "horario_id": horario_api.id,
        "fecha_desde": desde,
        "fecha_hasta": hasta,
    }, format="json")

    assert res.status_code == 409
    assert res.data["code"] == "conflicto"
    assert res.data["reservas"] == 1
    assert not ModificacionTemporaria.todos.exists()


def test_modificacion_sin_referencia_devuelve_422(api_client, horario_api):
    desde, hasta = _rango()

    res = api_client.post("/api/modificaciones/", {
        "tipo_modificacion": "BLOQUEAR_ACTIVIDAD",
        "fecha_desde": desde,
        "fecha_hasta": hasta,
    }, format="json")

    assert res.status_code == 422
    assert res.data["code"] == "validacion"
    assert res.data["campo"] == "actividad_id"


def test_revertir_inexistente_devuelve_404(api_client, db):
    res = api_client.post("/api/modificaciones/9999/revertir/")
    assert res.status_code == 404


def test_reaplicar_modificacion(api_client, horario_api):
    desde, hasta = _rango(0, 2)
    res = api_client.post("/api/modificaciones/", {
        "tipo_modificacion": "CAMBIAR_CUPOS",
        "horario_id": horario_api.id,
        "fecha_desde": desde,
        "fecha_hasta": hasta,
        "nuevos_cupos_totales": 4,
    }, format="json")
    assert res.status_code == 201, res.data

    res = api_client.post(f"/api/modificaciones/{res.data['modificacion_id']}/aplicar/")

    assert res.status_code == 200
    assert res.data["turnos_intentados"] == 3


def test_verificar_reservas(api_client, horario_api):
    desde, hasta = _rango(0, 6)
    turno = Turno.objects.filter(horario=horario_api).order_by("fecha").first()
    retener_cupo(turno.id, 2)

    res = api_client.post("/api/turnos/verificar-reservas/", {
        "horario_id": horario_api.id, "fecha_desde": desde, "fecha_hasta": hasta,
    }, format="json")

    assert res.status_code == 200
    assert res.data["affected_reservations"] == 1
    assert res.data["total_turnos"] == 7
    assert res.data["turnos_con_reservas"][0]["consumido"] == 2


def test_desbloquear_turnos(api_client, horario_api):
    Turno.objects.filter(horario=horario_api).update(bloqueado=True)
    desde, hasta = _rango(0, 3)

    res = api_client.post("/api/turnos/desbloquear/", {
        "horario_id": horario_api.id, "fecha_desde": desde, "fecha_hasta": hasta,
    }, format="json")

    assert res.status_code == 200
    assert res.data["turnos_desbloqueados"] == 4
    assert Turno.objects.filter(horario=horario_api, bloqueado=True).count() == 10


def test_abm_de_un_turno(api_client, horario_api):
    fecha = (hoy_utc() + timedelta(days=20)).isoformat()

    res = api_client.post("/api/turnos/", {
        "horario_id": horario_api.id, "fecha": fecha, "cupo_total": 5,
    }, format="json")
    assert res.status_code == 201, res.data
    assert (res.data["cupo_total"], res.data["cupo_disponible"]) == (5, 5)
    assert res.data["hora_inicio"] == "10:00:00"
    turno_id = res.data["id"]

    res = api_client.get(f"/api/turnos/{turno_id}/")
    assert res.status_code == 200
    assert res.data["fecha"] == fecha

    retener_cupo(turno_id, 2)
    res = api_client.patch(f"/api/turnos/{turno_id}/", {"cupo_total": 8}, format="json")
    assert res.status_code == 200, res.data
    assert (res.data["cupo_total"], res.data["cupo_disponible"], res.data["cupo_consumido"]) == (8, 6, 2)

    res = api_client.patch(f"/api/turnos/{turno_id}/", {"cupo_total": 1}, format="json")
    assert res.status_code == 409
    assert res.data["consumido"] == 2

    res = api_client.delete(f"/api/turnos/{turno_id}/")
    assert res.status_code == 409


def test_eliminar_turno_e_incluir_borrados(api_client, horario_api):
    turno = Turno.objects.filter(horario=horario_api).order_by("fecha").first()

    res = api_client.delete(f"/api/turnos/{turno.id}/")
    assert res.status_code == 200
    assert res.data == {"id": turno.id}

    assert api_client.get(f"/api/turnos/{turno.id}/").status_code == 404
    assert api_client.get("/api/turnos/", {"horario": horario_api.id}).data["count"] == 13

    res = api_client.get("/api/turnos/", {"horario": horario_api.id, "incluir_borrados": "true"})
    assert res.data["count"] == 14
    borrados = [t for t in res.data["results"] if t["deleted_at"] is not None]
    assert [t["id"] for t in borrados] == [turno.id]


def test_editar_turno_campo_no_editable(api_client, horario_api):
    turno = Turno.objects.filter(horario=horario_api).order_by("fecha").first()

    res = api_client.patch(f"/api/turnos/{turno.id}/", {"cupo_disponible": 3}, format="json")

    assert res.status_code == 400
    assert "cupo_disponible" in res.data


@pytest.mark.parametrize(
    "metodo, url",
    [
        ("get", "/api/turnos/abc/"),
        ("delete", "/api/modificaciones/abc/"),
        ("post", "/api/modificaciones/abc/revertir/"),
        ("post", "/api/modificaciones/abc/aplicar/"),
    ],
)
def test_pk_no_numerico_devuelve_404(api_client, db, metodo, url):
    res = getattr(api_client, metodo)(url)
    assert res.status_code == 404


def test_editar_modificacion(api_client, horario_api):
    desde, hasta = _rango(0, 2)
    res = api_client.post("/api/modificaciones/", {
        "tipo_modificacion": "BLOQUEAR_HORARIO",
        "horario_id": horario_api.id,
        "fecha_desde": desde,
        "fecha_hasta": hasta,
    }, format="json")
    modificacion_id = res.data["modificacion_id"]
    _, nuevo_hasta = _rango(0, 1)

    res = api_client.patch(
        f"/api/modificaciones/{modificacion_id}/", {"fecha_hasta": nuevo_hasta, "motivo": "Acotado"}, format="json"
    )

    assert res.status_code == 200, res.data
    assert res.data["turnos_modificados"] == 2
    assert res.data["data"]["fecha_hasta"] == nuevo_hasta
    assert res.data["data"]["motivo"] == "Acotado"
    assert Turno.objects.filter(horario=horario_api, bloqueado=True).count() == 2

    res = api_client.patch(
        f"/api/modificaciones/{modificacion_id}/", {"tipo_modificacion": "CAMBIAR_CUPOS"}, format="json"
    )
    assert res.status_code == 400


def test_editar_modificacion_invalida_devuelve_422(api_client, horario_api):
    desde, hasta = _rango(0, 2)
    res = api_client.post("/api/modificaciones/", {
        "tipo_modificacion": "CAMBIAR_HORA_INICIO",
        "horario_id": horario_api.id,
        "fecha_desde": desde,
        "fecha_hasta": hasta,
        "hora_inicio_nueva": "09:00",
    }, format="json")
    assert res.status_code == 201, res.data

    res = api_client.put(
        f"/api/modificaciones/{res.data['modificacion_id']}/", {"hora_inicio_nueva": "12:00"}, format="json"
    )

    assert res.status_code == 422
    assert res.data["code"] == "validacion"
    assert set(Turno.objects.filter(horario=horario_api).values_list("hora_inicio", flat=True)) == {
        time(9, 0), time(10, 0),
    }


def test_verificar_estado(api_client, horario_api):
    desde, hasta = _rango(0, 6)
    api_client.post("/api/modificaciones/", {
        "tipo_modificacion": "CAMBIAR_CUPOS",
        "horario_id": horario_api.id,
        "fecha_desde": desde,
        "fecha_hasta": desde,
        "nuevos_cupos_totales": 3,
    }, format="json")

    res = api_client.post("/api/turnos/verificar-estado/", {
        "horario_id": horario_api.id, "fecha_desde": desde, "fecha_hasta": hasta,
    }, format="json")

    assert res.status_code == 200
    assert res.data["resumen"] == {
        "total_turnos": 7,
        "total_modificaciones": 1,
        "turnos_con_cupo_disponible": 7,
    }
    assert res.data["modificaciones"][0]["nuevos_cupos_totales"] == 3
    assert res.data["turnos"][0]["cupo_total"] == 3
