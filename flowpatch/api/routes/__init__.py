"""
API Routes
Export all routers for main.py to include
"""
from flowpatch.api.routes import (
    health,
    workflow
)

__all__ = [
    "health",
    "workflow"
]
