"""TIPS Compass entry point — ``python -m tipscompass.core.server.main``.

With no arguments the MCP server starts on Streamable HTTP.
``--rotate-keys`` instead re-encrypts stored check-ins under the current
``ENCRYPTION_KEY`` (retired keys in ``ENCRYPTION_PREVIOUS_KEYS``) and exits.
"""

from __future__ import annotations

import argparse
import logging
from ipaddress import ip_address

from tipscompass.core.config.settings import Settings, get_settings
from tipscompass.core.server.app import create_app
from tipscompass.core.storage.database import CompassDatabase
from tipscompass.core.storage.encryption import FieldEncryptor
from tipscompass.core.storage.repository import CompassRepository

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def _configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.compass_log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT)


def _check_bind(settings: Settings) -> None:
    # Patient data sits behind this server with no auth layer in front of it
    if settings.compass_allow_insecure_bind or _is_loopback_host(settings.compass_host):
        return
    raise RuntimeError(
        f"Refusing to bind TIPS Compass to non-loopback host {settings.compass_host!r}. "
        "Set COMPASS_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def rotate_keys(settings: Settings) -> int:
    """Re-encrypt every stored check-in under the current key; returns the count."""
    if not settings.encryption_key:
        raise RuntimeError("ENCRYPTION_KEY is not set; there is nothing to rotate to.")
    encryptor = FieldEncryptor(
        settings.encryption_key, previous_keys=settings.previous_encryption_keys
    )
    with CompassDatabase(settings.db_path) as db:
        return CompassRepository(db, encryptor).rotate_checkin_encryption()


def run(argv: list[str] | None = None) -> None:
    """Start the TIPS Compass MCP server, or run key rotation."""
    parser = argparse.ArgumentParser(prog="tipscompass")
    parser.add_argument(
        "--rotate-keys",
        action="store_true",
        help="re-encrypt stored check-ins under ENCRYPTION_KEY and exit",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    _configure_logging(settings)

    if args.rotate_keys:
        count = rotate_keys(settings)
        logger.info("Key rotation complete: %d check-ins re-encrypted", count)
        return

    _check_bind(settings)
    logger.info(
        "Starting TIPS Compass on %s:%d (db %s)",
        settings.compass_host,
        settings.compass_port,
        settings.db_path,
    )
    create_app().run(
        transport="streamable-http",
        host=settings.compass_host,
        port=settings.compass_port,
    )


if __name__ == "__main__":
    run()
