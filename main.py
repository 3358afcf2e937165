"""Main entry point for running the FastAPI application."""
import uvicorn

from intake.config import settings

if __name__ == "__main__":
    print(f"Starting {settings.app_name} v{settings.version}")
    print(f"Debug mode: {settings.debug}")
    print(f"Database: {settings.db.url.split('@')[-1] if '@' in settings.db.url else settings.db.url}")
    print(f"Slack notifications: {'Enabled' if settings.slack.enabled else 'Disabled'}")
    print("-" * 50)

    uvicorn.run(
        "intake.api:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["intake"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
