"""
Request validation handler.

validate_request(Model) checks the merged request input (body, path params,
query) against a pydantic model and stores the parsed model on
http.validated. Failures become a 400 whose details list one
{field, message} entry per invalid field.
"""

import logging
from typing import Dict, List, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ovenly.core.http import HttpContext, RouteHandler
from ovenly.exceptions import ValidationError

logger = logging.getLogger(__name__)


def format_validation_errors(exc: PydanticValidationError) -> List[Dict[str, str]]:
    # Last message per field wins, like a dict keyed by dotted path
    by_field: Dict[str, str] = {}
    for error in exc.errors():
        by_field[".".join(str(part) for part in error["loc"])] = error["msg"]
    return [{"field": name, "message": message} for name, message in by_field.items()]


def validate_request(model: Type[BaseModel]) -> RouteHandler:
    def handle_validation(http: HttpContext) -> None:
        try:
            http.validated = model.model_validate(http.all_data())
        except PydanticValidationError as e:
            errors = format_validation_errors(e)
            logger.warning("Validation error on %s: %s", http.request.url.path, errors)
            raise ValidationError(
                message="Request validation failed",
                context={"errors": errors},
            ) from e

    handle_validation.__name__ = f"validate_{model.__name__}"
    return handle_validation
