"""HTTP API: FastAPI routers, request schemas and dependency providers."""
