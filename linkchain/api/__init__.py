"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from linkchain.api import app

    uvicorn linkchain.api:app
"""

from linkchain.api.app import app

__all__ = ["app"]
