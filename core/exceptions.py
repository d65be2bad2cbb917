from typing import Any, Optional


class CoverageError(Exception):
    """Base class for errors raised by the coverage tooling."""
    pass


class EngineInputError(CoverageError):
    """Raised when the matching engine is called with inputs of the wrong shape."""
    pass


class _SourceLoadError(CoverageError):

    def __init__(self, message: str, file_path: Optional[str] = None, details: Optional[Any] = None):
        self.message = message
        self.file_path = file_path
        self.details = details
        full_message = f"{message}"
        if file_path:
            full_message += f" [File: {file_path}]"
        if details:
            full_message += f"\nDetails:\n{details}"
        super().__init__(full_message)


class OperationLoadError(_SourceLoadError):
    """Raised when a contract cannot be turned into declared operations."""
    pass


class ExchangeLoadError(_SourceLoadError):
    """Raised when a collection or run report cannot be turned into exchanges."""
    pass


class ConfigLoadError(_SourceLoadError):
    """Raised when a run configuration file is unreadable or invalid."""
    pass
