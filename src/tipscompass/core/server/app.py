"""TIPS Compass MCP server — application factory.

``create_app()`` builds a fresh server per call so tests can inject their own
repository and audit logger. ``mcp`` is created lazily on first access for
FastMCP discovery.
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from tipscompass.core.audit.logger import AuditLogger
from tipscompass.core.config.settings import Settings, get_settings
from tipscompass.core.storage.database import CompassDatabase
from tipscompass.core.storage.encryption import EncryptionError, FieldEncryptor
from tipscompass.core.storage.repository import CompassRepository

logger = logging.getLogger(__name__)

SERVER_NAME = "TIPS Compass"
SERVER_VERSION = "0.1.0"

_INSTRUCTIONS = (
    "Post-TIPS recovery monitoring. Patients submit daily check-ins; "
    "each check-in re-evaluates the patient's triage risk "
    "(green / yellow / red) with the reasons behind it. "
    "Clinicians read risk states and log follow-up actions."
)


def _open_store(settings: Settings) -> tuple[CompassRepository, AuditLogger] | None:
    """Open the encrypted store named by settings, or None when it cannot be used."""
    if not settings.encryption_key:
        logger.info(
            "ENCRYPTION_KEY not set: running without persistence, check-in tools disabled"
        )
        return None
    try:
        encryptor = FieldEncryptor(
            settings.encryption_key,
            previous_keys=settings.previous_encryption_keys,
        )
    except EncryptionError as exc:
        logger.error("Check-in store disabled: %s", exc)
        return None

    compass_db = CompassDatabase(settings.db_path)
    compass_db.initialize()
    logger.info(
        "Check-in store ready: %s (schema v%d)",
        settings.db_path,
        compass_db.get_schema_version(),
    )
    return CompassRepository(compass_db, encryptor), AuditLogger(compass_db)


def create_app(
    *,
    repository_override: CompassRepository | None = None,
    audit_logger_override: AuditLogger | None = None,
) -> FastMCP:
    """Build the TIPS Compass server.

    ``health_check`` is always available. Check-in, risk and clinician action
    tools need a repository; audit tools need an audit logger. Either comes
    from the overrides or from the store configured in settings.
    """
    server = FastMCP(SERVER_NAME, instructions=_INSTRUCTIONS)

    repository = repository_override
    audit_logger = audit_logger_override
    if repository is None:
        opened = _open_store(get_settings())
        if opened is not None:
            repository = opened[0]
            audit_logger = audit_logger or opened[1]

    @server.tool
    def health_check() -> dict:
        """Report server status and whether storage and auditing are enabled."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_enabled": repository is not None,
            "audit_enabled": audit_logger is not None,
        }

    if repository is not None:
        from tipscompass.domains.tips.tools.checkin_tools import register_checkin_tools
        from tipscompass.domains.tips.tools.clinician_action_tools import (
            register_clinician_action_tools,
        )
        from tipscompass.domains.tips.tools.risk_tools import register_risk_tools

        register_checkin_tools(server, repository, audit_logger)
        register_risk_tools(server, repository)
        register_clinician_action_tools(server, repository)
        logger.info("Check-in, risk and clinician action tools registered")

    if audit_logger is not None:
        from tipscompass.domains.tips.tools.audit_tools import register_audit_tools

        register_audit_tools(server, audit_logger)

    return server


def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
