from typing import Optional


class ContentStoreError(Exception):
    """Transient failure talking to the Content Store."""

    def __init__(self, path: str, detail: str = "Content Store request failed", status_code: Optional[int] = None):
        self.path = path
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{detail}: {path}")


class ContentNotFoundError(ContentStoreError):
    def __init__(self, path: str):
        super().__init__(path, detail="Content not found", status_code=404)


class StorageError(Exception):
    """Durable local storage could not be read or written."""
