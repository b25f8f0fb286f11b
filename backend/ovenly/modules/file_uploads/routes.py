from ovenly.core.router import router
from ovenly.middleware.form_data import upload_any
from ovenly.middleware.validation import validate_request
from ovenly.modules.file_uploads.controllers import remove_files, upload_files
from ovenly.modules.file_uploads.validators import FILE_VALIDATION_CONFIG, RemoveFilesRequest

router.route("/uploads").post(
    upload_any(FILE_VALIDATION_CONFIG), upload_files
).delete(
    validate_request(RemoveFilesRequest), remove_files
)
