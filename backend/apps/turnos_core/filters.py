# apps/turnos_core/filters.py

import django_filters
from django.db.models import F

from apps.turnos_core.models import ModificacionTemporaria, TipoModificacion, Turno


class TurnoFilter(django_filters.FilterSet):
    desde = django_filters.DateFilter(field_name="fecha", lookup_expr="gte")
    hasta = django_filters.DateFilter(field_name="fecha", lookup_expr="lte")
    solo_disponibles = django_filters.BooleanFilter(method="filter_solo_disponibles")
    con_reservas = django_filters.BooleanFilter(method="filter_con_reservas")

    class Meta:
        model = Turno
        fields = ["horario", "actividad_id", "agencia_id", "bloqueado"]

    def filter_solo_disponibles(self, queryset, name, value):
        if value:
            return queryset.filter(bloqueado=False, cupo_disponible__gt=0)
        return queryset

    def filter_con_reservas(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter(cupo_disponible__lt=F("cupo_total"))
        return queryset.filter(cupo_disponible=F("cupo_total"))


class ModificacionTemporariaFilter(django_filters.FilterSet):
    tipo = django_filters.ChoiceFilter(field_name="tipo_modificacion", choices=TipoModificacion.choices)
    fecha_desde = django_filters.DateFilter(field_name="fecha_desde", lookup_expr="gte")
    fecha_hasta = django_filters.DateFilter(field_name="fecha_hasta", lookup_expr="lte")

    class Meta:
        model = ModificacionTemporaria
        fields = ["agencia_id", "actividad_id", "horario", "activo"]
