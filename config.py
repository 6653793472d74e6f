"""Environment-driven settings for the prediction service.

Values come from the process environment or a local ``.env`` file.
The image size, decision threshold and upload ceiling are part of the
model's training contract and are deliberately not read from the environment.
"""

from typing import Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # Local path, http(s):// URL or s3://bucket/key
    model_url: str = Field(default="./ai_model/model.pt")
    model_dir: str = Field(default="./ai_model")
    model_load_wait_seconds: float = Field(default=30.0)

    upload_dir: str = Field(default="./uploads")
    frontend_url: str = Field(default="http://localhost:3000")
    log_level: str = Field(default="INFO")

    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: Optional[str] = None


settings = Settings()

HOST = settings.host
PORT = settings.port
MODEL_URL = settings.model_url
MODEL_DIR = settings.model_dir
MODEL_LOAD_WAIT_SECONDS = settings.model_load_wait_seconds
UPLOAD_DIR = settings.upload_dir
FRONTEND_URL = settings.frontend_url
LOG_LEVEL = settings.log_level
AWS_ACCESS_KEY_ID = settings.aws_access_key_id
AWS_SECRET_ACCESS_KEY = settings.aws_secret_access_key
AWS_REGION = settings.aws_region

# Model contract
IMAGE_SIZE: Tuple[int, int] = (224, 224)
PREDICTION_THRESHOLD = 0.5
MAX_UPLOAD_BYTES = 1_000_000
# Largest decoded image accepted, checked before pixel data is loaded
MAX_IMAGE_PIXELS = 25_000_000
