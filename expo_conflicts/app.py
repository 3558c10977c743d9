"""
ASGI entry point.

Re-exports the FastAPI app and runs it with uvicorn when executed directly:
    python -m expo_conflicts.app
"""

from expo_conflicts.api.main import app
from expo_conflicts.config import get_settings

__all__ = ["app"]


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "expo_conflicts.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload and settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
