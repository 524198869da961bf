"""
erp_api -- Flask HTTP boundary.

Routes parse requests, gate them on the session principal, call kernel
and module services, commit, and wrap results in the response envelope.
This is the only layer that commits a transaction.
"""

from erp_api.app import create_app

__all__ = ["create_app"]
