from erp_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from erp_kernel.db.engine import get_engine, get_session_factory, init_engine_from_url, session_scope

__all__ = [
    "UUID",
    "Base",
    "TrackedBase",
    "UUIDString",
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
]
