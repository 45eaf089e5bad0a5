# apps/turnos_core/admin.py

from django.contrib import admin
from apps.turnos_core.models import Horario, ModificacionTemporaria, Reserva, Turno


@admin.register(Horario)
class HorarioAdmin(admin.ModelAdmin):
    list_display = ("id", "actividad_id", "agencia_id", "fecha_inicio", "dias", "hora_inicio", "cupo", "habilitada")
    list_filter = ("habilitada", "dia_completo")
    search_fields = ("actividad_id", "agencia_id")


@admin.register(Turno)
class TurnoAdmin(admin.ModelAdmin):
    list_display = ("id", "horario", "fecha", "hora_inicio", "cupo_total", "cupo_disponible", "bloqueado")
    list_filter = ("bloqueado", "fecha")
    search_fields = ("horario__id", "actividad_id")
    ordering = ("-fecha",)
    readonly_fields = ("cupo_total", "cupo_disponible")  # se tocan sólo vía servicios


@admin.register(Reserva)
class ReservaAdmin(admin.ModelAdmin):
    list_display = ("id", "turno", "cantidad", "estado", "creado_en")
    list_filter = ("estado",)


@admin.register(ModificacionTemporaria)
class ModificacionTemporariaAdmin(admin.ModelAdmin):
    list_display = ("id", "tipo_modificacion", "horario", "actividad_id", "agencia_id", "fecha_desde", "fecha_hasta", "activo")
    list_filter = ("tipo_modificacion", "activo")
    ordering = ("-fecha_desde",)
