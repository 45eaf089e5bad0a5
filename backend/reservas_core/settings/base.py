# reservas_core/settings/base.py

from pathlib import Path
from datetime import timedelta
import os
from urllib.parse import urlparse

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(nombre, defecto):
    return os.getenv(nombre, str(defecto)) == 'True'


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-only-unsafe-key')
DEBUG = _env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = os.getenv('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.admin', 'django.contrib.auth', 'django.contrib.contenttypes',
    'django.contrib.sessions', 'django.contrib.messages', 'django.contrib.staticfiles',
    # terceros
    'django_filters', 'rest_framework', 'rest_framework_simplejwt', 'corsheaders', 'drf_yasg',
    # proyecto
    'apps.common', 'apps.turnos_core',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'apps.common.middleware.RequestLoggingMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'reservas_core.urls'
WSGI_APPLICATION = 'reservas_core.wsgi.application'

# El admin y la UI de swagger son las únicas vistas con templates.
TEMPLATES = [{
    'BACKEND': 'django.template.backends.django.DjangoTemplates',
    'APP_DIRS': True,
    'OPTIONS': {'context_processors': [
        'django.template.context_processors.request',
        'django.contrib.auth.context_processors.auth',
        'django.contrib.messages.context_processors.messages',
    ]},
}]


# -------------------------------------------------------------------
# Database: DATABASE_URL > POSTGRES_* > sqlite (dev)
# select_for_update sólo bloquea de verdad en PostgreSQL.
# -------------------------------------------------------------------
def _db_from_env():
    url = os.getenv('DATABASE_URL', '').strip()
    if url:
        u = urlparse(url)
        if u.scheme == 'sqlite':
            return {'ENGINE': 'django.db.backends.sqlite3', 'NAME': u.path.lstrip('/')}
        return {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': u.path.lstrip('/'),
            'USER': u.username or '', 'PASSWORD': u.password or '',
            'HOST': u.hostname or '', 'PORT': u.port or '',
            'OPTIONS': {'sslmode': 'require'} if _env_bool('DB_SSLMODE_REQUIRE', True) else {},
        }

    if os.getenv('POSTGRES_DB'):
        return {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('POSTGRES_DB'),
            'USER': os.getenv('POSTGRES_USER', ''),
            'PASSWORD': os.getenv('POSTGRES_PASSWORD', ''),
            'HOST': os.getenv('POSTGRES_HOST', 'localhost'),
            'PORT': os.getenv('POSTGRES_PORT', '5432'),
        }

    return {'ENGINE': 'django.db.backends.sqlite3', 'NAME': BASE_DIR / '../db.sqlite3'}


DATABASES = {'default': _db_from_env()}
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# TIME_ZONE sólo afecta la presentación: el motor de turnos calcula en UTC.
LANGUAGE_CODE = 'es'
TIME_ZONE = os.getenv('DJANGO_TZ', 'America/Argentina/Buenos_Aires')
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = os.getenv('DJANGO_STATIC_ROOT', str(BASE_DIR / '../staticfiles'))

CORS_ALLOWED_ORIGINS = [o for o in os.getenv('CORS_ALLOWED_ORIGINS', '').split(',') if o]

# -------------------------------------------------------------------
# DRF / JWT (el usuario estándar de Django sólo se consume)
# -------------------------------------------------------------------
REST_FRAMEWORK = {
    'DEFAULT_PERMISSION_CLASSES': ('rest_framework.permissions.IsAuthenticated',),
    'DEFAULT_AUTHENTICATION_CLASSES': ('rest_framework_simplejwt.authentication.JWTAuthentication',),
    'DEFAULT_FILTER_BACKENDS': ['django_filters.rest_framework.DjangoFilterBackend'],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.LimitOffsetPagination',
    'PAGE_SIZE': int(os.getenv('DJANGO_PAGE_SIZE', '50')),
    'EXCEPTION_HANDLER': 'apps.common.exceptions.turnos_exception_handler',
}
SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=int(os.getenv('JWT_ACCESS_MINUTES', '30'))),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=int(os.getenv('JWT_REFRESH_DAYS', '7'))),
    'AUTH_HEADER_TYPES': ('Bearer',),
}
SWAGGER_SETTINGS = {
    'SECURITY_DEFINITIONS': {
        'Bearer': {'type': 'apiKey', 'name': 'Authorization', 'in': 'header'},
    },
}

# -------------------------------------------------------------------
# Motor de turnos
# -------------------------------------------------------------------
# Ventana de expansión de horarios recurrentes (días, límite superior exclusivo)
TURNOS_DIAS_VENTANA_EXPANSION = int(os.getenv('TURNOS_DIAS_VENTANA_EXPANSION', '365'))
# Reintentos del compare-and-swap al parchear turnos con reservas
TURNOS_MAX_REINTENTOS_CAS = int(os.getenv('TURNOS_MAX_REINTENTOS_CAS', '3'))

# -------------------------------------------------------------------
# Logging a stdout (text|json). DEBUG_LOG_REQUESTS prende el log de
# request/response del middleware; DJANGO_LOG_SKIP_CONTAINS (csv) descarta
# mensajes por substring.
# -------------------------------------------------------------------
DEBUG_LOG_REQUESTS = _env_bool('DEBUG_LOG_REQUESTS', DEBUG)
LOG_LEVEL = os.getenv('DJANGO_LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('DJANGO_LOG_FORMAT', 'text')

LOG_FORMATTERS = {
    'text': {'format': '[{levelname}] {asctime} {name} {message}', 'style': '{'},
    'json': {'()': 'pythonjsonlogger.json.JsonFormatter',
             'fmt': '%(asctime)s %(levelname)s %(name)s %(message)s'},
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'denylist': {
            '()': 'apps.common.log_filters.MessageDenylistFilter',
            'denylist': os.getenv('DJANGO_LOG_SKIP_CONTAINS', '').split(','),
        },
    },
    'formatters': {'app': LOG_FORMATTERS['json' if LOG_FORMAT == 'json' else 'text']},
    'handlers': {'console': {'class': 'logging.StreamHandler', 'formatter': 'app', 'filters': ['denylist']}},
    'root': {'handlers': ['console'], 'level': LOG_LEVEL},
    'loggers': {
        # 401/404 de DRF no son errores del servicio
        'django.request': {'handlers': ['console'], 'level': os.getenv('DJANGO_REQUEST_LOG_LEVEL', 'ERROR'), 'propagate': False},
        'apps.common.middleware': {
            'handlers': ['console'], 'level': 'DEBUG' if DEBUG_LOG_REQUESTS else 'WARNING', 'propagate': False,
        },
        'apps': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
