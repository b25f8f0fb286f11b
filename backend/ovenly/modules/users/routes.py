from ovenly.core.router import router
from ovenly.middleware.validation import validate_request
from ovenly.modules.users.controllers import create_user, get_users
from ovenly.modules.users.schemas import CreateUserRequest

router.route("/users").get(get_users).post(validate_request(CreateUserRequest), create_user)
