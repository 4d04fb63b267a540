"""FastAPI web layer for Koyn Finance.

Re-exports the application factory so consumers can import directly:
    from Koyn_Finance.web import create_app
"""

from Koyn_Finance.web.app import create_app

__all__ = ["create_app"]
