"""
Ovenly Backend: Middleware Package
=====================================

Two kinds live here:

    ASGI middleware (every request, added in create_app):
        RequestIDMiddleware   → X-Request-ID correlation
        InitGuardMiddleware   → blocks requests until initialization is done
                                (production / serverless only)

    Route handlers (per route, passed to router.route(...).post(...)):
        upload_any(config)        → multipart parsing, validation, dedup
        validate_request(Model)   → pydantic validation of request input
"""
