# apps/common/logging.py
import logging
from rest_framework import serializers


class LoggedModelSerializer(serializers.ModelSerializer):
    """ModelSerializer que registra create y update con el modelo afectado."""

    def _logger(self):
        return logging.getLogger(f"apps.serializers.{self.__class__.__name__}")

    def create(self, validated_data):
        """Crea la instancia dejando registro de los datos validados.

        Args:
            validated_data (dict): Datos ya validados por el serializer.

        Returns:
            Model: La instancia creada.
        """
        instance = super().create(validated_data)
        self._logger().info(
            "[%s.create] id=%s data=%s", self.Meta.model.__name__, instance.pk, validated_data
        )
        return instance

    def update(self, instance, validated_data):
        """Actualiza la instancia dejando registro de los cambios.

        Args:
            instance (Model): Instancia existente.
            validated_data (dict): Datos nuevos ya validados.

        Returns:
            Model: La instancia actualizada.
        """
        self._logger().info(
            "[%s.update] id=%s data=%s", self.Meta.model.__name__, instance.pk, validated_data
        )
        return super().update(instance, validated_data)
