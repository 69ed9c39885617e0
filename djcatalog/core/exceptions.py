"""
Custom exceptions for DJ Catalog

This module defines the exceptions raised by the reconciliation engine,
the storage layer and the source importers.
"""


class DJCatalogError(Exception):
    """Base exception for all DJ Catalog errors"""

    def __init__(self, message: str, details: str = None, filepath: str = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.filepath = filepath

    def __str__(self):
        parts = [self.message]
        if self.filepath:
            parts.append(f"File: {self.filepath}")
        if self.details:
            parts.append(f"Details: {self.details}")
        return " | ".join(parts)


class ParseFailure(DJCatalogError):
    """Raised when stored or imported metadata for a single row cannot be read"""

    def __init__(self, message: str, details: str = None, filepath: str = None,
                 row_key: str = None):
        super().__init__(message, details, filepath)
        self.row_key = row_key


class OperationCancelled(DJCatalogError):
    """Raised when a running stage observes its cancellation token"""

    def __init__(self, stage: str):
        super().__init__(f"{stage} cancelled")
        self.stage = stage


class ConfigurationError(DJCatalogError):
    """Raised when configuration values are invalid"""
    pass


class ServiceError(DJCatalogError):
    """Raised when a service operation fails"""

    def __init__(self, service_name: str, message: str, details: str = None, filepath: str = None):
        super().__init__(message, details, filepath)
        self.service_name = service_name

    def __str__(self):
        return f"[{self.service_name}] {super().__str__()}"


class StorageError(ServiceError):
    """Raised when the catalog database rejects an operation"""

    def __init__(self, message: str, details: str = None, filepath: str = None):
        super().__init__("Storage", message, details, filepath)


class SourceImportError(ServiceError):
    """Raised when a source export cannot be read"""

    def __init__(self, message: str, details: str = None, filepath: str = None):
        super().__init__("Import", message, details, filepath)
