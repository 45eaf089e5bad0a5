# apps/turnos_core/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from apps.turnos_core.views import (
    DesbloquearTurnosView,
    GenerarTurnosView,
    HorarioViewSet,
    ModificacionTemporariaViewSet,
    TurnoViewSet,
    VerificarEstadoView,
    VerificarReservasView,
)


router = DefaultRouter()
# CRUD de horarios recurrentes (alta/edición disparan generación/reconciliación)
router.register(r'horarios', HorarioViewSet, basename='horarios')

# Turnos: listado con filtros + ABM de un turno suelto (pk numérico)
router.register(r'turnos', TurnoViewSet, basename='turnos')

# Modificaciones temporarias: alta = aplicar, edición = deshacer + re-aplicar, baja = revertir
router.register(r'modificaciones', ModificacionTemporariaViewSet, basename='modificaciones')

urlpatterns = [
    # POST → generar turnos de un horario o de todos los horarios de una actividad
    path("turnos/generar/", GenerarTurnosView.as_view(), name="generar-turnos"),

    # POST → turnos del período con reservas (previo a una modificación)
    path("turnos/verificar-reservas/", VerificarReservasView.as_view(), name="verificar-reservas"),

    # POST → turnos de un horario + modificaciones activas del período
    path("turnos/verificar-estado/", VerificarEstadoView.as_view(), name="verificar-estado"),

    # POST → desbloqueo manual de turnos en un rango de fechas
    path("turnos/desbloquear/", DesbloquearTurnosView.as_view(), name="desbloquear-turnos"),

    path("", include(router.urls)),
]
