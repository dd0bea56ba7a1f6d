from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from styleme.config import logger, validate_api_config

from .routers import router
from .routers.dependencies import close_http_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    status = validate_api_config()
    if not status["is_configured"]:
        logger.warning("FASHN_API_KEY is missing or malformed; try-on calls will fail")
    yield
    await close_http_client()


# Initialize FastAPI application
app = FastAPI(
    title="StyleMe Try-On API",
    description="Virtual try-on orchestration with subscription gating",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


logger.info("StyleMe Try-On API initialized successfully")
