from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

# 프로젝트 루트의 .env 파일 명시적 로딩
project_root = Path(__file__).parent.parent
env_path = project_root / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI  # noqa: E402

from ingestion.settings import get_settings  # noqa: E402
from ingestion.utils.logging import configure_logging, get_logger  # noqa: E402

from .database import init_db  # noqa: E402
from .routes import router  # noqa: E402


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.structlog_level, json_enabled=settings.log_json)
    application = FastAPI(title="Stock News API", version="0.1.0")
    init_db()
    application.include_router(router)

    @application.get("/healthz", tags=["system"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    get_logger(__name__).info("api.started", extra={"env_file": str(env_path) if env_path.exists() else None})
    return application


app = create_app()
