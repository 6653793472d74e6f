from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse

from config import MAX_UPLOAD_BYTES, UPLOAD_DIR
from schemas.prediction import FailResponse, PredictionResponse
from services.prediction import PredictionPipeline
from utils.upload import staged_upload

router = APIRouter()


def get_pipeline(request: Request) -> PredictionPipeline:
    return request.app.state.pipeline


def get_upload_dir() -> Path:
    return Path(UPLOAD_DIR)


@router.post(
    "/predict",
    response_model=PredictionResponse,
    responses={400: {"model": FailResponse}, 413: {"model": FailResponse}},
)
async def predict(
    image: Optional[UploadFile] = File(None),
    pipeline: PredictionPipeline = Depends(get_pipeline),
    upload_dir: Path = Depends(get_upload_dir),
):
    """
    Classify an uploaded image as Cancer / Non-cancer
    """
    async with staged_upload(image, upload_dir, MAX_UPLOAD_BYTES) as image_path:
        result = await pipeline.handle_predict(image_path)

    response = PredictionResponse(data=result)
    return JSONResponse(
        status_code=200,
        content=response.model_dump(by_alias=True, mode="json"),
    )


@router.get("/health")
async def health(pipeline: PredictionPipeline = Depends(get_pipeline)):
    return {
        "status": "ok",
        "model_loaded": pipeline.model_service.is_model_loaded(),
    }
