import uvicorn

from .config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "chatmock.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.backend_log_level,
    )


if __name__ == "__main__":
    main()
