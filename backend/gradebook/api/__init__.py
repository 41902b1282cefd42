"""HTTP layer for the assessment core."""
from .router import router as api_router, get_current_user

__all__ = [
    'api_router',
    'get_current_user',
]
