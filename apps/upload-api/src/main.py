import uvicorn
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from upload_api.cores import injectable
from upload_api.cores.config import settings
from upload_api.cores.database import init_db
from upload_api.cores.errors import register_exception_handlers
from upload_api.router.router import api_router

from shared_messaging.producer import RabbitMQProducer

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Music Upload API...")

    mongo = await init_db()
    logger.info("Database Connected")

    producer = None
    if settings.RABBITMQ_URL:
        producer = RabbitMQProducer(settings.RABBITMQ_URL, settings.EVENTS_EXCHANGE)
        await producer.connect()
        injectable._Producer = producer
        logger.info("Producer Connected")
    else:
        logger.info("RABBITMQ_URL not set, upload events disabled")

    yield

    logger.info("Stopping Music Upload API...")
    if producer:
        await producer.close()
    injectable._Producer = None
    await mongo.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan,
    swagger_ui_parameters={"syntaxHighlight": {"theme": "nord"}}
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Router
app.include_router(api_router, prefix="/api")

@app.get("/health")
def health():
    return {"status": "ok", "service": "music-upload-api"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
