"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from buurtinfo.api.deps import get_pipeline
from buurtinfo.api.routes import neighbourhood
from buurtinfo.config import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if get_pipeline.cache_info().currsize:
        await get_pipeline().aclose()


app = FastAPI(
    title="Buurtinfo",
    description="Neighbourhood information for Dutch addresses",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(neighbourhood.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("buurtinfo.api.app:app", host="0.0.0.0", port=8000, reload=settings.debug)
