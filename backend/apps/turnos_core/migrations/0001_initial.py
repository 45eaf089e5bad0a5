import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Horario",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("actividad_id", models.PositiveIntegerField(db_index=True)),
                ("agencia_id", models.PositiveIntegerField(db_index=True)),
                ("fecha_inicio", models.DateField()),
                ("dias", models.JSONField(blank=True, default=list)),
                ("dia_completo", models.BooleanField(default=False)),
                ("hora_inicio", models.TimeField(blank=True, null=True)),
                ("hora_fin", models.TimeField(blank=True, null=True)),
                ("cupo", models.PositiveIntegerField(default=0)),
                ("habilitada", models.BooleanField(default=True)),
                ("creado_en", models.DateTimeField(auto_now_add=True)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["actividad_id", "habilitada"], name="turnos_core_activid_8d1c4a_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Turno",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("actividad_id", models.PositiveIntegerField()),
                ("agencia_id", models.PositiveIntegerField()),
                ("fecha", models.DateField()),
                ("hora_inicio", models.TimeField(blank=True, null=True)),
                ("hora_fin", models.TimeField(blank=True, null=True)),
                ("cupo_total", models.PositiveIntegerField()),
                ("cupo_disponible", models.PositiveIntegerField()),
                ("bloqueado", models.BooleanField(default=False)),
                ("creado_en", models.DateTimeField(auto_now_add=True)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
                (
                    "horario",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="turnos",
                        to="turnos_core.horario",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["horario", "fecha"], name="turnos_core_horario_3f0b2e_idx"),
                    models.Index(fields=["actividad_id", "fecha"], name="turnos_core_activid_5a7e91_idx"),
                    models.Index(fields=["agencia_id", "fecha"], name="turnos_core_agencia_c2d4f0_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("cupo_disponible__lte", models.F("cupo_total"))),
                        name="ck_turno_disponible_lte_total",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("deleted_at__isnull", True)),
                        fields=("horario", "fecha"),
                        name="uq_turno_horario_fecha_activo",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Reserva",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("actividad_id", models.PositiveIntegerField()),
                ("agencia_id", models.PositiveIntegerField()),
                ("cantidad", models.PositiveIntegerField(default=1)),
                (
                    "estado",
                    models.CharField(
                        choices=[("hold", "Retenida"), ("confirmada", "Confirmada"), ("cancelada", "Cancelada")],
                        default="hold",
                        max_length=20,
                    ),
                ),
                ("creado_en", models.DateTimeField(auto_now_add=True)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
                (
                    "turno",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reservas",
                        to="turnos_core.turno",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["turno", "estado"], name="turnos_core_turno_i_9b8a12_idx"),
                    models.Index(fields=["agencia_id", "estado"], name="turnos_core_agencia_47e3bd_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ModificacionTemporaria",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                (
                    "tipo_modificacion",
                    models.CharField(
                        choices=[
                            ("CAMBIAR_HORA_INICIO", "Cambiar hora de inicio"),
                            ("CAMBIAR_CUPOS", "Cambiar cupos"),
                            ("BLOQUEAR_HORARIO", "Bloquear horario"),
                            ("BLOQUEAR_ACTIVIDAD", "Bloquear actividad"),
                            ("BLOQUEAR_TODAS", "Bloquear todas"),
                        ],
                        max_length=30,
                    ),
                ),
                ("actividad_id", models.PositiveIntegerField(blank=True, db_index=True, null=True)),
                ("agencia_id", models.PositiveIntegerField(blank=True, db_index=True, null=True)),
                ("fecha_desde", models.DateField()),
                ("fecha_hasta", models.DateField()),
                ("hora_inicio_actual", models.TimeField(blank=True, null=True)),
                ("hora_fin_actual", models.TimeField(blank=True, null=True)),
                ("cupo_actual", models.PositiveIntegerField(blank=True, null=True)),
                ("hora_inicio_nueva", models.TimeField(blank=True, null=True)),
                ("hora_fin_nueva", models.TimeField(blank=True, null=True)),
                ("nuevos_cupos_totales", models.PositiveIntegerField(blank=True, null=True)),
                ("motivo", models.CharField(blank=True, max_length=255)),
                ("activo", models.BooleanField(default=True)),
                ("creado_en", models.DateTimeField(auto_now_add=True)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
                (
                    "horario",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="modificaciones_temporarias",
                        to="turnos_core.horario",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["tipo_modificacion", "activo"], name="turnos_core_tipo_mo_e61f07_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("fecha_desde__lte", models.F("fecha_hasta"))),
                        name="ck_modificacion_rango_fechas",
                    ),
                ],
            },
        ),
    ]
