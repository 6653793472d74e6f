import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import FRONTEND_URL, HOST, LOG_LEVEL, PORT
from routes.route_prediction import router as prediction_router
from services.model_ai import model_ai
from services.prediction import PredictionPipeline
from utils.errors import register_error_handlers

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

origins = [
    FRONTEND_URL,
    "*",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting up application...")

    # Model loads in the background; /predict waits for it or fails closed
    model_ai.start_loading()

    yield

    # Shutdown
    await model_ai.stop_loading()
    logger.info("🛑 Shutting down application...")


app = FastAPI(lifespan=lifespan)
app.state.pipeline = PredictionPipeline(model_ai)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(prediction_router, tags=["Prediction"])

if __name__ == "__main__":
    logger.info(f"Server is running at: http://{HOST}:{PORT} !!!!")
    uvicorn.run("main:app", host=HOST, port=int(PORT))
