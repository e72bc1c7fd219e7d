from tcgscan.api.health import router as health_router
from tcgscan.api.imports import router as imports_router
from tcgscan.api.scan import router as scan_router
from tcgscan.api.status import router as status_router
from tcgscan.api.tasks import router as tasks_router

__all__ = [
    "health_router",
    "imports_router",
    "scan_router",
    "status_router",
    "tasks_router",
]
