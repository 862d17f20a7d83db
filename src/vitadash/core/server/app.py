"""VitaDash MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery (`fastmcp run vitadash/core/server/app.py:mcp`)
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from vitadash.core.audit.logger import AuditLogger
from vitadash.core.auth.allowlist import EmailAllowlist
from vitadash.core.config.settings import Settings, get_settings
from vitadash.core.storage.database import DatabaseError, DispenserDatabase
from vitadash.core.storage.encryption import EncryptionError, FieldEncryptor
from vitadash.core.storage.repository import DispenserRepository
from vitadash.domains.dispenser.connectors import CatalogSource, CommandSink, TelemetrySource
from vitadash.domains.dispenser.connectors.catalog import BundledCatalogSource
from vitadash.domains.dispenser.connectors.providers import (
    InMemoryCommandSink,
    RepositoryCommandSink,
    ScriptedTelemetrySource,
)
from vitadash.domains.dispenser.domain_logic.monitor import DeviceMonitor
from vitadash.domains.dispenser.tools.dashboard_tools import register_dashboard_tools
from vitadash.domains.dispenser.tools.device_tools import register_device_tools
from vitadash.domains.dispenser.tools.nutrition_tools import register_nutrition_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "VitaDash Pill Dispenser"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    settings_override: Settings | None = None,
    telemetry_override: TelemetrySource | None = None,
    repository_override: DispenserRepository | None = None,
    catalog_override: CatalogSource | None = None,
    command_sink_override: CommandSink | None = None,
) -> FastMCP:
    """Create and configure the VitaDash MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Loads the reference catalogs (configured CSVs or bundled samples)
    3. Initializes the encrypted storage layer and audit log (when keyed)
    4. Creates the device monitor and telemetry source
    5. Registers all tools
    """
    settings = settings_override or get_settings()

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Dashboard backend for an IoT pill dispenser. Provides live device "
            "status and activity events, nutrient analysis of meals against the "
            "user's daily requirement, disease-food risk matching, rule-based "
            "supplement recommendations, and dispense/refill commands."
        ),
    )

    # --- Reference catalogs ---
    catalog = catalog_override or BundledCatalogSource(
        foods=settings.food_catalog_path or None,
        disease_rules=settings.disease_rules_path or None,
        serving_defaults=settings.serving_defaults_path or None,
    )

    # --- Encrypted storage (dispenser data bank) ---
    repository: DispenserRepository | None = None
    audit_logger: AuditLogger | None = None
    if repository_override is not None:
        repository = repository_override
    elif settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            database = DispenserDatabase(settings.db_path)
            database.initialize()
            repository = DispenserRepository(database, encryptor)
            audit_logger = AuditLogger(database)
            logger.info(
                "Dispenser data bank initialized: %s (schema v%d)",
                settings.db_path,
                database.get_schema_version(),
            )
        except (EncryptionError, DatabaseError) as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence; profiles will not be stored")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured; running without persistence. "
            "Set ENCRYPTION_KEY to enable profiles and history."
        )

    # --- Device monitor and transports ---
    monitor = DeviceMonitor(log_capacity=settings.activity_log_capacity)

    telemetry: TelemetrySource | None = telemetry_override
    if telemetry is None and settings.telemetry_source == "mock":
        telemetry = ScriptedTelemetrySource()
        logger.info("Using scripted mock telemetry (%d snapshots)", len(telemetry))
    elif telemetry is None:
        logger.info("Waiting for device payloads via ingest_snapshot")

    if command_sink_override is not None:
        command_sink = command_sink_override
    elif repository is not None:
        command_sink = RepositoryCommandSink(repository)
    else:
        command_sink = InMemoryCommandSink()

    allowlist = EmailAllowlist(settings.allowed_email_list)
    if allowlist.enabled:
        logger.info("Email allowlist enabled (%d address(es))", len(allowlist))

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_enabled": repository is not None,
            "telemetry_source": telemetry.source_name if telemetry is not None else "push",
            "system_status": monitor.status.value,
            "foods_loaded": len(catalog.load_food_catalog()),
            "disease_rules_loaded": len(catalog.load_disease_rules()),
            "allowlist_enabled": allowlist.enabled,
        }
        if repository is not None:
            status["nutrition_logs_stored"] = repository.count_nutrition_logs()
        return status

    register_dashboard_tools(
        server,
        monitor,
        telemetry,
        default_scope=settings.device_scope,
        audit_logger=audit_logger,
    )
    register_nutrition_tools(
        server,
        catalog,
        repository,
        allowlist=allowlist,
        audit_logger=audit_logger,
        default_scope=settings.device_scope,
    )
    register_device_tools(
        server,
        monitor,
        command_sink,
        catalog,
        repository,
        allowlist=allowlist,
        audit_logger=audit_logger,
        default_scope=settings.device_scope,
    )
    logger.info("Dashboard, nutrition and device tools registered")

    # --- Profile tools (requires storage) ---
    if repository is not None:
        from vitadash.domains.dispenser.tools.profile_tools import register_profile_tools

        register_profile_tools(
            server,
            repository,
            allowlist=allowlist,
            audit_logger=audit_logger,
            default_scope=settings.device_scope,
        )
        logger.info("Profile tools registered")

    return server


# Module-level instance for FastMCP discovery (`fastmcp run ...app.py:mcp`).
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
