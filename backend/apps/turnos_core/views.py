# apps/turnos_core/views.py
# Built-in
import logging
import uuid

# Django
from django.db import transaction

# Django REST Framework
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.authentication import JWTAuthentication

# App imports
from apps.turnos_core.exceptions import PersistenciaError
from apps.turnos_core.filters import ModificacionTemporariaFilter, TurnoFilter
from apps.turnos_core.models import Horario, ModificacionTemporaria, Turno
from apps.turnos_core.serializers import (
    DesbloquearTurnosSerializer,
    GenerarTurnosSerializer,
    HorarioSerializer,
    ModificacionTemporariaCrearSerializer,
    ModificacionTemporariaEditarSerializer,
    ModificacionTemporariaSerializer,
    TurnoCrearSerializer,
    TurnoEditarSerializer,
    TurnoSerializer,
    VerificarEstadoSerializer,
    VerificarReservasSerializer,
)
from apps.turnos_core.services.eventos import (
    MENSAJE_ERROR_GENERACION,
    handle_horario_actualizado,
    handle_horario_creado,
    handle_horario_eliminado,
)
from apps.turnos_core.services.generar_turnos import (
    generar_turnos_desde_actividad,
    regenerar_turnos_de_horario,
)
from apps.turnos_core.services.modificaciones import MotorModificaciones
from apps.turnos_core.services.reconciliacion import SnapshotHorario
from apps.turnos_core.services.reservas import resumen_reservas
from apps.turnos_core.services.turnos import ServicioTurnos

logger = logging.getLogger(__name__)


def _es_verdadero(valor):
    return str(valor).strip().lower() in ("1", "true", "si", "sí", "yes")


# ------------------------------------------------------------------------------
# /horarios/  → CRUD de horarios recurrentes
# - create  → guarda + genera turnos (services.eventos.handle_horario_creado)
# - update  → snapshot previo + guarda + reconcilia turnos existentes
#             (body opcional: regenerar_todos=true incluye turnos pasados)
# - destroy → soft delete del horario + baja de sus turnos futuros
# Si el motor falla, se revierte también el cambio del horario.
# ------------------------------------------------------------------------------
class HorarioViewSet(viewsets.ModelViewSet):
    serializer_class = HorarioSerializer
    authentication_classes = [JWTAuthentication]
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["actividad_id", "agencia_id", "habilitada"]

    def get_queryset(self):
        return Horario.objects.all().order_by("id")

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            horario = serializer.save()
            evento = handle_horario_creado(horario)
            if not evento["success"]:
                transaction.set_rollback(True)
                return Response(evento, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response(
            {**serializer.data, "turnos": evento},
            status=status.HTTP_201_CREATED,
        )

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        anterior = SnapshotHorario.de_horario(instance)
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        regenerar_todos = _es_verdadero(request.data.get("regenerar_todos", False))

        with transaction.atomic():
            horario = serializer.save()
            evento = handle_horario_actualizado(anterior, horario, regenerar_todos=regenerar_todos)
            if not evento["success"]:
                transaction.set_rollback(True)
                return Response(evento, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({**serializer.data, "turnos": evento})

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        with transaction.atomic():
            instance.soft_delete()
            evento = handle_horario_eliminado(instance)
            if not evento["success"]:
                transaction.set_rollback(True)
                return Response(evento, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        logger.info("[horarios.destroy][ok] horario_id=%s", instance.id)
        return Response({"id": instance.id, "turnos": evento})


# ------------------------------------------------------------------------------
# /turnos/  → turnos vivos
# - list     → filtros: horario, actividad_id, agencia_id, bloqueado, desde,
#              hasta, solo_disponibles, con_reservas, incluir_borrados
# - retrieve/create/update/destroy → ABM de un turno suelto (services.turnos)
# ------------------------------------------------------------------------------
class TurnoViewSet(viewsets.ModelViewSet):
    authentication_classes = [JWTAuthentication]
    permission_classes = [IsAuthenticated]
    serializer_class = TurnoSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = TurnoFilter
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        incluir_borrados = self.action == "list" and _es_verdadero(
            self.request.query_params.get("incluir_borrados", False)
        )
        qs = Turno.todos.all() if incluir_borrados else Turno.objects.all()
        return qs.order_by("fecha", "hora_inicio", "id")

    def retrieve(self, request, *args, **kwargs):
        turno = ServicioTurnos().obtener(int(kwargs["pk"]))
        return Response(self.get_serializer(turno).data)

    def create(self, request, *args, **kwargs):
        entrada = TurnoCrearSerializer(data=request.data)
        entrada.is_valid(raise_exception=True)
        turno = ServicioTurnos().crear(**entrada.validated_data)
        return Response(self.get_serializer(turno).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        entrada = TurnoEditarSerializer(data=request.data)
        entrada.is_valid(raise_exception=True)
        turno = ServicioTurnos().actualizar(int(kwargs["pk"]), entrada.validated_data)
        return Response(self.get_serializer(turno).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        turno = ServicioTurnos().eliminar(int(kwargs["pk"]))
        return Response({"id": turno.id})


# ------------------------------------------------------------------------------
# POST /turnos/generar/  → generación a demanda
# - Body: horario_id | actividad_id
# - Idempotente: vuelve a correr sin duplicar turnos.
# ------------------------------------------------------------------------------
class GenerarTurnosView(APIView):
    authentication_classes = (JWTAuthentication,)
    permission_classes = [IsAuthenticated]

    def post(self, request):
        trace_id = str(uuid.uuid4())[:8]
        serializer = GenerarTurnosSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            if "horario_id" in data:
                resultado = regenerar_turnos_de_horario(data["horario_id"])
            else:
                resultado = generar_turnos_desde_actividad(data["actividad_id"])
        except PersistenciaError:
            logger.exception("[turnos.generar][error] trace=%s data=%s", trace_id, data)
            return Response(
                {"error": MENSAJE_ERROR_GENERACION, "trace_id": trace_id},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        logger.info(
            "[turnos.generar][ok] trace=%s creados=%s omitidos=%s",
            trace_id, resultado.turnos_creados, resultado.omitidos,
        )
        return Response({**resultado.as_dict(), "trace_id": trace_id}, status=status.HTTP_200_OK)


# ------------------------------------------------------------------------------
# POST /turnos/verificar-reservas/  → turnos del período con cupo consumido
# (lo usa el panel antes de proponer una modificación temporaria)
# ------------------------------------------------------------------------------
class VerificarReservasView(APIView):
    authentication_classes = (JWTAuthentication,)
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = VerificarReservasSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(resumen_reservas(**serializer.validated_data))


# POST /turnos/verificar-estado/  → turnos del horario + modificaciones activas del período
class VerificarEstadoView(APIView):
    authentication_classes = (JWTAuthentication,)
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = VerificarEstadoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        estado = ServicioTurnos().estado_turnos(**serializer.validated_data)
        return Response({
            "turnos": TurnoSerializer(estado["turnos"], many=True).data,
            "modificaciones": ModificacionTemporariaSerializer(estado["modificaciones"], many=True).data,
            "resumen": estado["resumen"],
        })


# POST /turnos/desbloquear/  → desbloqueo manual en un rango de fechas
class DesbloquearTurnosView(APIView):
    authentication_classes = (JWTAuthentication,)
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = DesbloquearTurnosSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(MotorModificaciones().desbloquear_turnos(**serializer.validated_data))


# ------------------------------------------------------------------------------
# /modificaciones/  → modificaciones temporarias
# - create  → valida, chequea conflictos, guarda y aplica (201; "warning" si
#             quedó guardada pero no se pudo aplicar del todo)
# - update  → edita fechas/valores nuevos/motivo: deshace, valida y re-aplica
# - destroy → revierte y da de baja (igual que POST {id}/revertir/)
# - POST {id}/aplicar/ → re-aplica una modificación activa
# Los errores del motor (422/409/404/500) los traduce el exception handler.
# ------------------------------------------------------------------------------
class ModificacionTemporariaViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = ModificacionTemporariaSerializer
    authentication_classes = [JWTAuthentication]
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_class = ModificacionTemporariaFilter
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        return ModificacionTemporaria.objects.all().order_by("-actualizado_en", "-id")

    def create(self, request, *args, **kwargs):
        entrada = ModificacionTemporariaCrearSerializer(data=request.data)
        entrada.is_valid(raise_exception=True)

        resultado = MotorModificaciones().crear_y_aplicar(entrada.validated_data)
        modificacion = ModificacionTemporaria.objects.get(pk=resultado.modificacion_id)
        return Response(
            {"data": self.get_serializer(modificacion).data, **resultado.as_dict()},
            status=status.HTTP_201_CREATED,
        )

    def update(self, request, *args, **kwargs):
        entrada = ModificacionTemporariaEditarSerializer(data=request.data)
        entrada.is_valid(raise_exception=True)

        resultado = MotorModificaciones().editar(int(kwargs["pk"]), entrada.validated_data)
        modificacion = ModificacionTemporaria.objects.get(pk=resultado.modificacion_id)
        return Response({"data": self.get_serializer(modificacion).data, **resultado.as_dict()})

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        return self._revertir(kwargs["pk"])

    @action(detail=True, methods=["post"])
    def revertir(self, request, pk=None):
        return self._revertir(pk)

    @action(detail=True, methods=["post"])
    def aplicar(self, request, pk=None):
        resultado = MotorModificaciones().aplicar_existente(int(pk))
        return Response(resultado.as_dict())

    def _revertir(self, pk):
        resultado = MotorModificaciones().revertir(int(pk))
        return Response({"id": resultado.modificacion_id, "reversion": resultado.as_dict()})
