"""
Module ORM Registry (``erp_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains all table definitions before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``erp_kernel.db.engine.create_tables`` and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``erp_modules.*.orm`` module.

    Kernel tables (users, roles) are registered first; module tables hold
    foreign keys to them.  Idempotent.
    """
    import erp_kernel.models  # noqa: F401
    import erp_kernel.services.sequence_service  # noqa: F401  # document_sequences
    import erp_modules.hr.orm  # noqa: F401
