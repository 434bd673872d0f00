from .actions_api import router as actions_api_router
from .admin_api import router as admin_api_router
from .items_api import router as items_api_router
from .loans_api import router as loans_api_router
from .users_api import router as users_api_router

ALL_ROUTERS = (
    items_api_router,
    users_api_router,
    loans_api_router,
    admin_api_router,
    actions_api_router,
)
