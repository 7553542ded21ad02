"""FileNest API routers.

- requests: request creation, public lookup, upload admission
- admin: integrity check/fix and one-off passes (admin key)
"""

from filenest.api.routers.admin import router as admin_router
from filenest.api.routers.requests import router as requests_router

__all__ = ["admin_router", "requests_router"]
