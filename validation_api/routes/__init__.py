"""
Routes package for Dataset Validation API.
"""

from validation_api.routes.votes import router as votes_router
from validation_api.routes.records import router as records_router
from validation_api.routes.outcomes import router as outcomes_router
from validation_api.routes.users import router as users_router
from validation_api.routes.reconcile import router as reconcile_router

__all__ = [
    "votes_router",
    "records_router",
    "outcomes_router",
    "users_router",
    "reconcile_router",
]
