"""HTTP API: routers, schemas, dependencies and exception handlers."""
