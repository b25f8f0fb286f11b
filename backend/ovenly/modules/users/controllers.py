from ovenly.core.http import HttpContext
from ovenly.modules.users.service import user_service


async def get_users(http: HttpContext):
    return {
        "message": "Users fetched successfully",
        "records": await user_service.list_users(),
    }


async def create_user(http: HttpContext):
    return {
        "status": "success",
        "record": await user_service.create_user(http.validated),
    }
