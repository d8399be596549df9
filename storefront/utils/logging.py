# storefront/utils/logging.py
import logging
import sys

from storefront.utils.settings import LOG_LEVEL

_ROOT = "storefront"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.setLevel(LOG_LEVEL.upper())
    return root


def get_logger(name: str) -> logging.Logger:
    _configure_root()
    # moduly spoza pakietu tez trafiaja pod wspolny handler
    if not name.startswith(_ROOT):
        name = f"{_ROOT}.{name}"
    return logging.getLogger(name)
