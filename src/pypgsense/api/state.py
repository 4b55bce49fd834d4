from typing import Any

# Shared service instances, filled by the FastAPI lifespan or the MCP startup
_services: dict[str, Any] = {}
