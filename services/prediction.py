import io
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import torch
from PIL import Image
from starlette.concurrency import run_in_threadpool
from torchvision import transforms
from torchvision.transforms import InterpolationMode

from config import IMAGE_SIZE, MAX_IMAGE_PIXELS, MAX_UPLOAD_BYTES, PREDICTION_THRESHOLD
from schemas.prediction import PredictionLabel, PredictionResult
from services.model_ai import ModelAI
from utils.errors import DecodeError, ModelUnavailable, PayloadTooLarge, ValidationError

logger = logging.getLogger(__name__)

# NHWC, the layout the classifier was trained against
IMAGE_TENSOR_SHAPE = (1, IMAGE_SIZE[0], IMAGE_SIZE[1], 3)

SUGGESTIONS = {
    PredictionLabel.POSITIVE: "Segera periksa ke dokter!",
    PredictionLabel.NEGATIVE: "Penyakit kanker tidak terdeteksi.",
}

# Raw 0-255 pixel values, no mean/std normalization
resize_transform = transforms.Compose(
    [
        transforms.Resize(IMAGE_SIZE, interpolation=InterpolationMode.BILINEAR),
        transforms.PILToTensor(),
    ]
)


def decode_image(image_bytes: bytes) -> Image.Image:
    """Decode raw bytes into an RGB PIL image, raising DecodeError on failure"""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        width, height = img.size
        if width * height > MAX_IMAGE_PIXELS:
            raise DecodeError(f"image is too large: {width}x{height} pixels")
        img.load()
        return img.convert("RGB")
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise DecodeError("image could not be decoded") from e


def to_image_tensor(image: Image.Image) -> torch.Tensor:
    """
    Resize to IMAGE_SIZE with bilinear interpolation and add a batch dimension.

    Returns:
        torch.Tensor: float32 tensor of shape (1, 224, 224, 3)
    """
    try:
        chw = resize_transform(image)
        tensor = chw.permute(1, 2, 0).to(torch.float32).unsqueeze(0)
    except (RuntimeError, ValueError, TypeError) as e:
        raise DecodeError("image could not be resized") from e

    if tuple(tensor.shape) != IMAGE_TENSOR_SHAPE:
        raise DecodeError(
            f"unexpected tensor shape {tuple(tensor.shape)}, "
            f"expected {IMAGE_TENSOR_SHAPE}"
        )
    return tensor


def prepare_tensor(image_bytes: bytes) -> torch.Tensor:
    return to_image_tensor(decode_image(image_bytes))


def interpret_score(score: float) -> PredictionLabel:
    return (
        PredictionLabel.POSITIVE
        if score > PREDICTION_THRESHOLD
        else PredictionLabel.NEGATIVE
    )


def build_result(label: PredictionLabel) -> PredictionResult:
    created_at = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return PredictionResult(
        id=str(uuid.uuid4()),
        label=label,
        suggestion=SUGGESTIONS[label],
        created_at=created_at.replace("+00:00", "Z"),
    )


class PredictionPipeline:
    """
    Per-request path from a staged upload to a PredictionResult.

    The model service is injected so the pipeline can check for the
    not-ready state before every inference instead of reading a global.
    """

    def __init__(self, model_service: ModelAI, max_upload_bytes: int = MAX_UPLOAD_BYTES):
        self.model_service = model_service
        self.max_upload_bytes = max_upload_bytes

    async def handle_predict(self, image_path: Optional[Path]) -> PredictionResult:
        if image_path is None:
            raise ValidationError("no image provided")

        try:
            size = image_path.stat().st_size
        except OSError as e:
            raise DecodeError("staged upload could not be read") from e

        if size > self.max_upload_bytes:
            raise PayloadTooLarge(f"{size} bytes exceeds {self.max_upload_bytes}")

        try:
            image_bytes = await run_in_threadpool(image_path.read_bytes)
        except OSError as e:
            raise DecodeError("staged upload could not be read") from e

        tensor = await run_in_threadpool(prepare_tensor, image_bytes)

        handle = await self.model_service.require_model()
        try:
            outputs = await run_in_threadpool(handle.infer, tensor)
        except Exception as e:
            raise ModelUnavailable("inference failed") from e

        if len(outputs) == 0:
            raise ModelUnavailable("model returned an empty output")
        score = float(outputs[0])

        label = interpret_score(score)
        logger.info(f"🎯 Predicted {label.value} (score={score:.4f})")
        return build_result(label)
