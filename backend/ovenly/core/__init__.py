"""Route registration, request context and application initialization."""
