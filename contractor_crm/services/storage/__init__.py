"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
A local JSON document is the default backend; Google Sheets is the remote
option. Both are interchangeable behind LedgerStorageInterface.
"""

from contractor_crm.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from contractor_crm.services.storage.json_file import JsonFileLedgerStorage
from contractor_crm.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Local document implementation
    "JsonFileLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
