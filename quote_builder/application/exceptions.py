class StoreError(RuntimeError):
    """Base class for failures raised while dispatching through the store."""
    pass


class ReducerFailure(StoreError):
    """Raised when a reducer throws; the store keeps its last committed state."""

    def __init__(self, kind: str, cause: BaseException) -> None:
        super().__init__(f"Reducer for {kind} failed: {cause}")
        self.kind = kind
        self.cause = cause


class MiddlewareFailure(StoreError):
    """Raised when a middleware leg throws something outside the store taxonomy."""

    def __init__(self, middleware: str, kind: str, cause: BaseException) -> None:
        super().__init__(f"Middleware {middleware} failed on {kind}: {cause}")
        self.middleware = middleware
        self.kind = kind
        self.cause = cause


class ValidationFailure(StoreError):
    """Raised when a validation rule rejects an action before or after the reducer."""
    pass


class PersistenceFailure(StoreError):
    """Raised when the storage medium cannot be written or read."""
    pass


class CatalogUnavailable(RuntimeError):
    """Raised when the catalog source fails (timeouts, network errors, bad payload)."""
    pass
