# turnos_core/management/commands/generar_turnos.py
# ------------------------------------------------------------------------------
# Job de ventana móvil: genera los turnos faltantes de los horarios habilitados.
#   - sin argumentos   → todos los horarios habilitados
#   - --horario ID     → un horario
#   - --actividad ID   → todos los horarios de la actividad (falla rápido)
#
# Idempotente: correrlo dos veces no duplica turnos.
# Un horario que falla no frena al resto (se loguea y se sigue).
# ------------------------------------------------------------------------------
import logging

from django.core.management.base import BaseCommand, CommandError

from apps.turnos_core.exceptions import TurnosError
from apps.turnos_core.services.generar_turnos import GeneradorTurnos, ResultadoGeneracion

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Genera turnos faltantes dentro de la ventana de expansión de cada horario habilitado."

    def add_arguments(self, parser):
        grupo = parser.add_mutually_exclusive_group()
        grupo.add_argument("--horario", type=int, help="ID de horario")
        grupo.add_argument("--actividad", type=int, help="ID de actividad")

    def handle(self, *args, **options):
        generador = GeneradorTurnos()

        try:
            if options.get("horario"):
                resultado = generador.regenerar_horario(options["horario"])
            elif options.get("actividad"):
                resultado = generador.generar_para_actividad(options["actividad"])
            else:
                resultado = self._generar_todos(generador)
        except TurnosError as exc:
            raise CommandError(exc.mensaje) from exc

        logger.info(
            "[CRON] Turnos generados: %s | omitidos: %s | fechas evaluadas: %s",
            resultado.turnos_creados, resultado.omitidos, resultado.total_fechas,
        )
        self.stdout.write(self.style.SUCCESS(
            f"Turnos creados: {resultado.turnos_creados} (omitidos: {resultado.omitidos})"
        ))

    def _generar_todos(self, generador):
        total = ResultadoGeneracion()
        for horario in generador.repo.horarios_habilitados():
            logger.info("[CRON] Generando turnos para horario %s", horario.id)
            try:
                total.acumular(generador.generar(horario))
            except TurnosError:
                logger.exception("[CRON] Falló la generación del horario %s", horario.id)
        return total
