# apps/turnos_core/serializers.py

import logging

from rest_framework import serializers
from rest_framework.exceptions import ValidationError as DRFValidationError

from apps.common.logging import LoggedModelSerializer
from apps.turnos_core.models import Horario, ModificacionTemporaria, TipoModificacion, Turno

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------------------
# HorarioSerializer
# - Alta/edición de horarios recurrentes. La generación/reconciliación de
#   turnos la dispara la vista (services.eventos), no el serializer.
# - dias: lista de enteros 0..6 (0 = domingo), sin repetidos.
# ------------------------------------------------------------------------------
class HorarioSerializer(LoggedModelSerializer):
    class Meta:
        model = Horario
        fields = [
            "id", "actividad_id", "agencia_id", "fecha_inicio", "dias",
            "dia_completo", "hora_inicio", "hora_fin", "cupo", "habilitada",
            "creado_en", "actualizado_en",
        ]
        read_only_fields = ["id", "creado_en", "actualizado_en"]

    def validate_dias(self, value):
        if not isinstance(value, list):
            raise DRFValidationError("dias debe ser una lista de enteros 0..6.")
        dias = []
        for d in value:
            if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6:
                raise DRFValidationError(f"Día inválido: {d!r} (0=domingo ... 6=sábado).")
            if d not in dias:
                dias.append(d)
        return sorted(dias)

    def validate(self, attrs):
        def valor(campo):
            if campo in attrs:
                return attrs[campo]
            return getattr(self.instance, campo, None)

        if not valor("dia_completo"):
            hora_inicio, hora_fin = valor("hora_inicio"), valor("hora_fin")
            if hora_inicio is None or hora_fin is None:
                raise DRFValidationError("hora_inicio y hora_fin son requeridas si no es día completo.")
            if hora_inicio >= hora_fin:
                raise DRFValidationError("hora_fin debe ser posterior a hora_inicio.")
        return attrs


class TurnoSerializer(serializers.ModelSerializer):
    cupo_consumido = serializers.IntegerField(read_only=True)

    class Meta:
        model = Turno
        fields = [
            "id", "horario", "actividad_id", "agencia_id", "fecha",
            "hora_inicio", "hora_fin", "cupo_total", "cupo_disponible",
            "cupo_consumido", "bloqueado", "actualizado_en", "deleted_at",
        ]
        read_only_fields = [f for f in fields if f != "cupo_consumido"]


class ModificacionTemporariaSerializer(serializers.ModelSerializer):
    horario_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ModificacionTemporaria
        fields = [
            "id", "tipo_modificacion", "horario_id", "actividad_id", "agencia_id",
            "fecha_desde", "fecha_hasta",
            "hora_inicio_actual", "hora_fin_actual", "cupo_actual",
            "hora_inicio_nueva", "hora_fin_nueva", "nuevos_cupos_totales",
            "motivo", "activo", "creado_en", "actualizado_en",
        ]
        read_only_fields = [f for f in fields if f != "horario_id"]


# ------------------------------------------------------------------------------
# Payloads de acciones: sólo validan forma. Las reglas por tipo (referencia
# obligatoria, rango de fechas, cupos) viven en services.modificaciones.
# ------------------------------------------------------------------------------
class ModificacionTemporariaCrearSerializer(serializers.Serializer):
    tipo_modificacion = serializers.ChoiceField(choices=TipoModificacion.choices)
    horario_id = serializers.IntegerField(required=False, allow_null=True)
    actividad_id = serializers.IntegerField(required=False, allow_null=True)
    agencia_id = serializers.IntegerField(required=False, allow_null=True)
    fecha_desde = serializers.DateField()
    fecha_hasta = serializers.DateField()
    hora_inicio_actual = serializers.TimeField(required=False, allow_null=True)
    hora_fin_actual = serializers.TimeField(required=False, allow_null=True)
    hora_inicio_nueva = serializers.TimeField(required=False, allow_null=True)
    hora_fin_nueva = serializers.TimeField(required=False, allow_null=True)
    cupo_actual = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    nuevos_cupos_totales = serializers.IntegerField(required=False, allow_null=True)
    motivo = serializers.CharField(required=False, allow_blank=True, max_length=255)


class GenerarTurnosSerializer(serializers.Serializer):
    horario_id = serializers.IntegerField(required=False)
    actividad_id = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if ("horario_id" in attrs) == ("actividad_id" in attrs):
            raise DRFValidationError("Indicar horario_id o actividad_id (sólo uno).")
        return attrs


class VerificarReservasSerializer(serializers.Serializer):
    horario_id = serializers.IntegerField(required=False)
    actividad_id = serializers.IntegerField(required=False)
    fecha_desde = serializers.DateField()
    fecha_hasta = serializers.DateField()

    def validate(self, attrs):
        if "horario_id" not in attrs and "actividad_id" not in attrs:
            raise DRFValidationError("Indicar horario_id o actividad_id.")
        if attrs["fecha_desde"] > attrs["fecha_hasta"]:
            raise DRFValidationError("fecha_desde no puede ser posterior a fecha_hasta.")
        return attrs


class DesbloquearTurnosSerializer(serializers.Serializer):
    horario_id = serializers.IntegerField(required=False)
    actividad_id = serializers.IntegerField(required=False)
    agencia_id = serializers.IntegerField(required=False)
    fecha_desde = serializers.DateField()
    fecha_hasta = serializers.DateField()


class TurnoCrearSerializer(serializers.Serializer):
    horario_id = serializers.IntegerField()
    fecha = serializers.DateField()
    hora_inicio = serializers.TimeField(required=False, allow_null=True)
    hora_fin = serializers.TimeField(required=False, allow_null=True)
    cupo_total = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    bloqueado = serializers.BooleanField(required=False, default=False)


# cupo_disponible no se edita: se recalcula desde el consumido (services.turnos).
class TurnoEditarSerializer(serializers.Serializer):
    fecha = serializers.DateField(required=False)
    hora_inicio = serializers.TimeField(required=False, allow_null=True)
    hora_fin = serializers.TimeField(required=False, allow_null=True)
    cupo_total = serializers.IntegerField(required=False, min_value=0)
    bloqueado = serializers.BooleanField(required=False)

    def validate(self, attrs):
        _rechazar_campos_no_editables(self)
        return attrs


class ModificacionTemporariaEditarSerializer(serializers.Serializer):
    fecha_desde = serializers.DateField(required=False)
    fecha_hasta = serializers.DateField(required=False)
    hora_inicio_nueva = serializers.TimeField(required=False, allow_null=True)
    hora_fin_nueva = serializers.TimeField(required=False, allow_null=True)
    nuevos_cupos_totales = serializers.IntegerField(required=False, allow_null=True)
    motivo = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate(self, attrs):
        _rechazar_campos_no_editables(self)
        return attrs


class VerificarEstadoSerializer(serializers.Serializer):
    horario_id = serializers.IntegerField()
    fecha_desde = serializers.DateField()
    fecha_hasta = serializers.DateField()


def _rechazar_campos_no_editables(serializer):
    extra = sorted(set(serializer.initial_data) - set(serializer.fields))
    if extra:
        raise DRFValidationError({campo: "Campo no editable." for campo in extra})
