"""Character Studio — FastAPI REST API layer.

This package contains the FastAPI application, the Pydantic request/response
models, and the bearer credential dependency.

Modules
-------
main
    FastAPI application factory, route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
security
    ``Authorization: Bearer`` dependency resolving the caller's user ID.
"""
