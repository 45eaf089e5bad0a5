# reservas_core/settings/dev.py
from .base import *
import os
# Dev por ENV (no hardcode)
# DEBUG ya viene de base vía DJANGO_DEBUG

CORS_ALLOW_ALL_ORIGINS = os.getenv("CORS_ALLOW_ALL_ORIGINS", "True") == "True"
