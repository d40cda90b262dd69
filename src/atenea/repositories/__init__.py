from .contracts import TableBackend
from .rest_backend import RestBackend
from .sqlite_repo import SqliteBackend
from .store import AteneaRepository

__all__ = ["TableBackend", "RestBackend", "SqliteBackend", "AteneaRepository"]
