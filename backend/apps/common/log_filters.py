# apps/common/log_filters.py
# Se carga desde settings.LOGGING, antes de que el registro de apps esté listo:
# no importar modelos ni DRF acá.
import logging


class MessageDenylistFilter(logging.Filter):
    """Descarta registros cuyo mensaje contenga alguno de los substrings de `denylist`."""

    def __init__(self, denylist=None):
        super().__init__()
        self.denylist = [s.strip() for s in (denylist or []) if s and s.strip()]

    def filter(self, record):
        if not self.denylist:
            return True
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            return True
        return not any(sub in msg for sub in self.denylist)
