from ovenly.core.router import router
from ovenly.modules.general.controllers import health_check, index

router.get("", index)
router.get("/health", health_check)
