# reservas_core/settings/test.py
from .base import *

DEBUG = False
DEBUG_LOG_REQUESTS = False

DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# Ventana fija para que los tests no dependan del entorno
TURNOS_DIAS_VENTANA_EXPANSION = 365
TURNOS_MAX_REINTENTOS_CAS = 3
