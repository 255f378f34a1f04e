from __future__ import annotations


class CatalogPayloadError(ValueError):
    """Catalog API payload does not have the shape of a storable record."""

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code
