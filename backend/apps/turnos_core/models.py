# apps/turnos_core/models.py

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from apps.turnos_core.services.cupos import cupo_consumido


# ------------------------------------------------------------------------------
# Soft delete como ciclo de vida explícito (activo | eliminado{en}).
# El filtro "excluir eliminados" vive SÓLO en SoftDeleteQuerySet.activos() y lo
# aplica el manager por defecto: ninguna consulta tiene que acordarse de filtrarlo.
# `todos` deja ver también los eliminados (auditoría / tests).
# ------------------------------------------------------------------------------
class CicloVida(models.TextChoices):
    ACTIVO = "activo", "Activo"
    ELIMINADO = "eliminado", "Eliminado"


class SoftDeleteQuerySet(models.QuerySet):
    def activos(self):
        return self.filter(deleted_at__isnull=True)

    def eliminados(self):
        return self.filter(deleted_at__isnull=False)

    def soft_delete(self, cuando=None):
        cuando = cuando or timezone.now()
        campos = {"deleted_at": cuando}
        if any(f.name == "actualizado_en" for f in self.model._meta.fields):
            campos["actualizado_en"] = cuando
        return self.activos().update(**campos)


class ActivosManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    def get_queryset(self):
        return super().get_queryset().activos()


class SoftDeleteModel(models.Model):
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    objects = ActivosManager()
    todos = SoftDeleteQuerySet.as_manager()

    class Meta:
        abstract = True

    @property
    def esta_eliminado(self):
        return self.deleted_at is not None

    @property
    def estado_ciclo(self):
        """("activo", None) o ("eliminado", deleted_at)."""
        if self.deleted_at is None:
            return (CicloVida.ACTIVO, None)
        return (CicloVida.ELIMINADO, self.deleted_at)

    def soft_delete(self, cuando=None, campos_extra=None):
        self.deleted_at = cuando or timezone.now()
        update_fields = ["deleted_at", *(campos_extra or [])]
        if hasattr(self, "actualizado_en"):
            self.actualizado_en = self.deleted_at
            update_fields.append("actualizado_en")
        self.save(update_fields=update_fields)


# ------------------------------------------------------------------------------
# Horario: plantilla semanal recurrente de una actividad.
# dias: subconjunto de {0..6} con 0 = domingo.
# ------------------------------------------------------------------------------
class Horario(SoftDeleteModel):
    actividad_id = models.PositiveIntegerField(db_index=True)
    agencia_id = models.PositiveIntegerField(db_index=True)

    fecha_inicio = models.DateField()
    dias = models.JSONField(default=list, blank=True)
    dia_completo = models.BooleanField(default=False)
    hora_inicio = models.TimeField(null=True, blank=True)
    hora_fin = models.TimeField(null=True, blank=True)
    cupo = models.PositiveIntegerField(default=0)
    habilitada = models.BooleanField(default=True)

    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["actividad_id", "habilitada"], name="turnos_core_activid_8d1c4a_idx"),
        ]

    def __str__(self):
        if self.dia_completo:
            franja = "día completo"
        else:
            franja = f"{self.hora_inicio}-{self.hora_fin}"
        return f"Horario {self.pk} actividad={self.actividad_id} dias={self.dias} {franja}"

    def clean(self):
        from django.core.exceptions import ValidationError

        errores = {}
        dias = self.dias or []
        if any(not isinstance(d, int) or d < 0 or d > 6 for d in dias):
            errores["dias"] = "Los días deben ser enteros entre 0 (domingo) y 6 (sábado)."
        if not self.dia_completo:
            if self.hora_inicio is None or self.hora_fin is None:
                errores["hora_inicio"] = "hora_inicio y hora_fin son requeridas si no es día completo."
            elif self.hora_inicio >= self.hora_fin:
                errores["hora_fin"] = "hora_fin debe ser posterior a hora_inicio."
        if errores:
            raise ValidationError(errores)


# ------------------------------------------------------------------------------
# Turno: instancia concreta (fecha + franja) generada desde un Horario.
# Invariante: 0 <= cupo_disponible <= cupo_total (también como constraint de DB).
# ------------------------------------------------------------------------------
class Turno(SoftDeleteModel):
    horario = models.ForeignKey(Horario, on_delete=models.PROTECT, related_name="turnos")
    actividad_id = models.PositiveIntegerField()
    agencia_id = models.PositiveIntegerField()

    fecha = models.DateField()
    hora_inicio = models.TimeField(null=True, blank=True)
    hora_fin = models.TimeField(null=True, blank=True)
    cupo_total = models.PositiveIntegerField()
    cupo_disponible = models.PositiveIntegerField()
    bloqueado = models.BooleanField(default=False)

    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(cupo_disponible__lte=F("cupo_total")),
                name="ck_turno_disponible_lte_total",
            ),
            # Idempotencia por DB: un único turno vivo por (horario, fecha).
            models.UniqueConstraint(
                fields=["horario", "fecha"],
                condition=Q(deleted_at__isnull=True),
                name="uq_turno_horario_fecha_activo",
            ),
        ]
        indexes = [
            models.Index(fields=["horario", "fecha"], name="turnos_core_horario_3f0b2e_idx"),
            models.Index(fields=["actividad_id", "fecha"], name="turnos_core_activid_5a7e91_idx"),
            models.Index(fields=["agencia_id", "fecha"], name="turnos_core_agencia_c2d4f0_idx"),
        ]

    def __str__(self):
        estado = " [bloqueado]" if self.bloqueado else ""
        return f"Turno {self.pk} {self.fecha} {self.hora_inicio} {self.cupo_disponible}/{self.cupo_total}{estado}"

    @property
    def cupo_consumido(self):
        return cupo_consumido(self.cupo_total, self.cupo_disponible)


class Reserva(models.Model):
    """
    Reserva contra un turno. El alta/baja real (checkout, pagos) es externa;
    acá sólo vive lo necesario para chequear conflictos y el cupo consumido.
    """

    ESTADOS = [
        ("hold", "Retenida"),
        ("confirmada", "Confirmada"),
        ("cancelada", "Cancelada"),
    ]

    turno = models.ForeignKey(Turno, on_delete=models.PROTECT, related_name="reservas")
    actividad_id = models.PositiveIntegerField()
    agencia_id = models.PositiveIntegerField()
    cantidad = models.PositiveIntegerField(default=1)
    estado = models.CharField(max_length=20, choices=ESTADOS, default="hold")

    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["turno", "estado"], name="turnos_core_turno_i_9b8a12_idx"),
            models.Index(fields=["agencia_id", "estado"], name="turnos_core_agencia_47e3bd_idx"),
        ]

    def __str__(self):
        return f"Reserva {self.pk} turno={self.turno_id} x{self.cantidad} ({self.estado})"


# ------------------------------------------------------------------------------
# Modificación temporaria: override acotado en fechas sobre los turnos,
# sin tocar el Horario base. Los campos *_actual guardan el valor previo para
# poder revertir.
# ------------------------------------------------------------------------------
class TipoModificacion(models.TextChoices):
    CAMBIAR_HORA_INICIO = "CAMBIAR_HORA_INICIO", "Cambiar hora de inicio"
    CAMBIAR_CUPOS = "CAMBIAR_CUPOS", "Cambiar cupos"
    BLOQUEAR_HORARIO = "BLOQUEAR_HORARIO", "Bloquear horario"
    BLOQUEAR_ACTIVIDAD = "BLOQUEAR_ACTIVIDAD", "Bloquear actividad"
    BLOQUEAR_TODAS = "BLOQUEAR_TODAS", "Bloquear todas"

    @property
    def es_bloqueo(self):
        return self in (
            TipoModificacion.BLOQUEAR_HORARIO,
            TipoModificacion.BLOQUEAR_ACTIVIDAD,
            TipoModificacion.BLOQUEAR_TODAS,
        )

    @property
    def campo_referencia(self):
        """Campo de referencia obligatorio para el tipo."""
        if self == TipoModificacion.BLOQUEAR_ACTIVIDAD:
            return "actividad_id"
        if self == TipoModificacion.BLOQUEAR_TODAS:
            return "agencia_id"
        return "horario_id"


class ModificacionTemporaria(SoftDeleteModel):
    tipo_modificacion = models.CharField(max_length=30, choices=TipoModificacion.choices)

    horario = models.ForeignKey(
        Horario,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="modificaciones_temporarias",
    )
    actividad_id = models.PositiveIntegerField(null=True, blank=True, db_index=True)
    agencia_id = models.PositiveIntegerField(null=True, blank=True, db_index=True)

    fecha_desde = models.DateField()
    fecha_hasta = models.DateField()

    # Valores previos (capturados al aplicar) → para revertir
    hora_inicio_actual = models.TimeField(null=True, blank=True)
    hora_fin_actual = models.TimeField(null=True, blank=True)
    cupo_actual = models.PositiveIntegerField(null=True, blank=True)

    # Valores nuevos
    hora_inicio_nueva = models.TimeField(null=True, blank=True)
    hora_fin_nueva = models.TimeField(null=True, blank=True)
    nuevos_cupos_totales = models.PositiveIntegerField(null=True, blank=True)

    motivo = models.CharField(max_length=255, blank=True)
    activo = models.BooleanField(default=True)

    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(fecha_desde__lte=F("fecha_hasta")),
                name="ck_modificacion_rango_fechas",
            ),
        ]
        indexes = [
            models.Index(fields=["tipo_modificacion", "activo"], name="turnos_core_tipo_mo_e61f07_idx"),
        ]

    def __str__(self):
        return f"{self.tipo_modificacion} {self.fecha_desde}..{self.fecha_hasta} (id={self.pk})"

    @property
    def tipo(self):
        return TipoModificacion(self.tipo_modificacion)

    @property
    def referencia(self):
        """Valor del campo de referencia obligatorio según el tipo."""
        return getattr(self, self.tipo.campo_referencia)
