import logging
from typing import Dict, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from schemas.prediction import FailResponse

logger = logging.getLogger(__name__)

GENERIC_FAIL_MESSAGE = "Terjadi kesalahan dalam melakukan prediksi"
PAYLOAD_TOO_LARGE_MESSAGE = "File terlalu besar. Maksimal ukuran file adalah 1MB."


class PredictionError(Exception):
    """Base class for every failure raised by the prediction pipeline"""


class ValidationError(PredictionError):
    """No image was supplied with the request"""


class PayloadTooLarge(PredictionError):
    """Uploaded file exceeds the size ceiling"""


class DecodeError(PredictionError):
    """Upload could not be staged or read, or the image is corrupt, too large,
    unsupported, or has the wrong shape after resizing
    """


class ModelUnavailable(PredictionError):
    """Model is not loaded or the inference call failed"""


# variant -> (HTTP status, public message)
ERROR_RESPONSES: Dict[Type[PredictionError], Tuple[int, str]] = {
    PredictionError: (400, GENERIC_FAIL_MESSAGE),
    ValidationError: (400, GENERIC_FAIL_MESSAGE),
    PayloadTooLarge: (413, PAYLOAD_TOO_LARGE_MESSAGE),
    DecodeError: (400, GENERIC_FAIL_MESSAGE),
    ModelUnavailable: (400, GENERIC_FAIL_MESSAGE),
}


def fail_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=FailResponse(message=message).model_dump(),
    )


def error_response(exc: PredictionError) -> JSONResponse:
    variant = next(cls for cls in type(exc).__mro__ if cls in ERROR_RESPONSES)
    status_code, message = ERROR_RESPONSES[variant]
    return fail_response(status_code, message)


async def prediction_error_handler(request: Request, exc: PredictionError):
    cause = exc.__cause__
    logger.warning(
        f"⚠️ {request.method} {request.url.path} failed: "
        f"{type(exc).__name__}: {exc}" + (f" (cause: {cause!r})" if cause else "")
    )
    return error_response(exc)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
):
    logger.warning(f"⚠️ Invalid form data on {request.url.path}: {exc.errors()}")
    return fail_response(400, GENERIC_FAIL_MESSAGE)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        f"❌ Unexpected error on {request.method} {request.url.path}", exc_info=exc
    )
    return fail_response(400, GENERIC_FAIL_MESSAGE)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PredictionError, prediction_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
