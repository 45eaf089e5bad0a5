# apps/common/middleware.py
import logging
from django.utils.deprecation import MiddlewareMixin
from django.conf import settings

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(MiddlewareMixin):
    """Loguea request/response (DEBUG) cuando DEBUG_LOG_REQUESTS está activo."""

    def _activo(self):
        return getattr(settings, 'DEBUG_LOG_REQUESTS', settings.DEBUG)

    def process_view(self, request, view_func, view_args, view_kwargs):
        if not self._activo():
            return None
        request._view_func = view_func
        try:
            payload = request.body.decode('utf-8') if request.body else ''
        except UnicodeDecodeError:
            payload = '<binary>'
        logger.debug(
            "[REQUEST] %s %s view=%s payload=%s",
            request.method,
            request.get_full_path(),
            getattr(view_func, '__name__', view_func),
            payload,
        )
        return None

    def process_response(self, request, response):
        if self._activo():
            view_name = getattr(getattr(request, '_view_func', None), '__name__', None)
            data = getattr(response, 'data', '<non DRF response>')
            logger.debug(
                "[RESPONSE] %s %s view=%s status=%s data=%s",
                request.method,
                request.get_full_path(),
                view_name,
                getattr(response, 'status_code', 'unknown'),
                data,
            )
        return response
