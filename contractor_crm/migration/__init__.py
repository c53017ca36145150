"""Schema migration package."""

from contractor_crm.migration.migrator import (
    LEGACY_SCHEMA_VERSION,
    migrate,
    needs_migration,
    schema_version,
)

__all__ = [
    "LEGACY_SCHEMA_VERSION",
    "migrate",
    "needs_migration",
    "schema_version",
]
