from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from pydantic import BaseModel, HttpUrl

from config import PreviewConfig, setup_logging
from renderer.preview_service import PreviewService, build_preview_service


class PreviewResponse(BaseModel):
    url: str
    available: bool
    failure: str | None = None

    title: str | None = None
    site: str | None = None
    description: str | None = None
    icon: str | None = None
    image: str | None = None
    video: str | None = None


def create_app(
    config: Optional[PreviewConfig] = None,
    service_factory: Optional[Callable[[], PreviewService]] = None,
) -> FastAPI:
    config = config or PreviewConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config.log_level)
        service = service_factory() if service_factory else build_preview_service(config)
        app.state.preview_service = service
        try:
            yield
        finally:
            await service.close()

    app = FastAPI(title="Link Preview API", lifespan=lifespan)

    @app.get("/preview", response_model=PreviewResponse)
    async def preview(url: HttpUrl, request: Request):
        service: PreviewService = request.app.state.preview_service
        outcome = await service.fetch_preview_outcome(str(url))
        if outcome.record is None:
            return PreviewResponse(
                url=outcome.url,
                available=False,
                failure=outcome.failure.value if outcome.failure else None,
            )
        rec = outcome.record
        return PreviewResponse(
            url=rec.url,
            available=True,
            title=rec.title,
            site=rec.site,
            description=rec.description,
            icon=rec.icon,
            image=rec.image,
            video=rec.video,
        )

    @app.get("/health")
    async def health(request: Request):
        service: PreviewService = request.app.state.preview_service
        coord = service.coordinator
        return {
            "status": "ok",
            "engines": coord.engine_count,
            "idle_engines": coord.idle_engine_count,
            "rendering": len(coord.pending_urls),
            "queued": len(coord.queued_urls),
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
