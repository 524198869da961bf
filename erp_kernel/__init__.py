"""
ERP Kernel

The transactional core shared by every ERP module:
- Monthly document numbering with atomic counters
- Role/permission evaluation
- Multi-step approval documents
- Best-effort audit trail and user notifications
"""

__version__ = "0.1.0"
