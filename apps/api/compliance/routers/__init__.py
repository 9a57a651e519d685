"""API routers."""

from compliance.routers.applications import router as applications_router
from compliance.routers.public import router as public_router
from compliance.routers.reference import router as reference_router
