from .local import LocalBackend, MapPolicy

__all__ = ("LocalBackend", "MapPolicy")
