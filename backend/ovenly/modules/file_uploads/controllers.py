"""
Upload and removal controllers.

Both run as the terminal handler of their route: upload_files after the
multipart handler has stored and deduplicated the files, remove_files after
the request body has been validated.
"""

import logging
from typing import List

from starlette.responses import JSONResponse

from ovenly.core.http import HttpContext
from ovenly.services.upload_store import DeleteResult, upload_store

logger = logging.getLogger(__name__)


def upload_files(http: HttpContext):
    files = http.files()
    if not files:
        return JSONResponse(status_code=400, content={"message": "Files are required"})

    return {
        "message": "Files uploaded",
        "files": [f.to_dict(http.request) for f in files],
    }


def build_delete_response(total: int, results: List[DeleteResult]) -> dict:
    failed = [r for r in results if not r.success]
    successful = total - len(failed)

    body = {
        "success": not failed,
        "message": (
            f"Deleted {successful} file(s), {len(failed)} failed."
            if failed
            else f"Successfully deleted {total} file(s)."
        ),
        "total": total,
        "successful": successful,
        "failed": len(failed),
    }
    if failed:
        body["errors"] = [{"filename": r.filename, "error": r.error} for r in failed]
    return body


async def remove_files(http: HttpContext):
    filenames = http.validated.files
    if not filenames:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": "No files provided. Use 'files' as an array of filenames.",
            },
        )

    results = await upload_store.delete_many(filenames)
    body = build_delete_response(len(filenames), results)
    return JSONResponse(status_code=200 if body["success"] else 400, content=body)
