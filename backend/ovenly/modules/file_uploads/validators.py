"""Upload limits and request models for the file upload endpoints."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ovenly.middleware.form_data import FileValidationOptions

FILE_VALIDATION_CONFIG = FileValidationOptions.from_settings()


class RemoveFilesRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    files: List[str] = Field(default_factory=list)
