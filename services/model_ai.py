import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import aiohttp
import numpy as np
import torch

from config import MODEL_DIR, MODEL_LOAD_WAIT_SECONDS, MODEL_URL
from services.s3_client import parse_s3_uri, s3_client
from utils.errors import ModelUnavailable

logger = logging.getLogger(__name__)


class ModelHandle:
    """
    Invocation-ready wrapper around a loaded TorchScript module.

    Read-only after construction, so it can be shared by every in-flight request.
    """

    def __init__(self, module: torch.nn.Module, device: torch.device):
        self.module = module
        self.device = device

    def infer(self, tensor: torch.Tensor) -> np.ndarray:
        """Run the model and return its raw output flattened to 1-D"""
        with torch.no_grad():
            outputs = self.module(tensor.to(self.device))

            if isinstance(outputs, (tuple, list)):
                outputs = outputs[0]

        return outputs.detach().cpu().numpy().ravel()


class ModelAI:
    def __init__(
        self,
        model_source: str = MODEL_URL,
        model_dir: str = MODEL_DIR,
        load_wait_seconds: float = MODEL_LOAD_WAIT_SECONDS,
    ):
        """
        Holds the process-wide model handle.

        Args:
            model_source: local path, http(s):// URL or s3://bucket/key
            model_dir: cache directory for downloaded artifacts
            load_wait_seconds: how long a request waits for an in-flight load
        """
        self.model_source = model_source
        self.model_dir = Path(model_dir)
        self.load_wait_seconds = load_wait_seconds
        self.device = torch.device("cuda:0" if torch.cuda.is_available() else "cpu")

        self.current_model: Optional[ModelHandle] = None
        self.load_error: Optional[str] = None
        self._loading_task: Optional[asyncio.Task] = None

    def is_model_loaded(self) -> bool:
        return self.current_model is not None

    def is_loading(self) -> bool:
        return self._loading_task is not None and not self._loading_task.done()

    def start_loading(self) -> asyncio.Task:
        """Schedule load_model in the background without blocking startup"""
        if self._loading_task is None:
            self._loading_task = asyncio.create_task(self.load_model())
        return self._loading_task

    async def stop_loading(self):
        if self.is_loading():
            self._loading_task.cancel()
            try:
                await self._loading_task
            except asyncio.CancelledError:
                pass

    async def require_model(self) -> ModelHandle:
        """
        Return the loaded handle, waiting for an in-flight load if needed.

        Raises:
            ModelUnavailable: if loading failed, never started, or took too long
        """
        if self.current_model is None and self.is_loading():
            logger.info("⏳ Waiting for model to finish loading...")
            try:
                await asyncio.wait_for(
                    asyncio.shield(self._loading_task), self.load_wait_seconds
                )
            except asyncio.TimeoutError as e:
                raise ModelUnavailable("model is still loading") from e

        if self.current_model is None:
            raise ModelUnavailable(self.load_error or "model is not loaded")
        return self.current_model

    async def load_model(self) -> bool:
        """
        Resolve the model source and deserialize it.

        Any failure is logged and leaves the handle unset; it never propagates.

        Returns:
            bool: True if the model is ready
        """
        try:
            model_path = await self._resolve_model_path()
            logger.info(f"🔄 Loading model from: {model_path}")

            module = await asyncio.to_thread(
                torch.jit.load, str(model_path), map_location=self.device
            )
            module.eval()

            self.current_model = ModelHandle(module, self.device)
            self.load_error = None
            logger.info(f"✅ Model loaded successfully on {self.device}")
            return True

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.current_model = None
            self.load_error = f"{type(e).__name__}: {e}"
            logger.exception(f"❌ Error loading model from {self.model_source}")
            return False

    async def _resolve_model_path(self) -> Path:
        parsed = urlparse(self.model_source)

        if parsed.scheme == "s3":
            bucket, key = parse_s3_uri(self.model_source)
            model_path = self.model_dir / Path(key).name
            if model_path.exists():
                logger.info(f"📦 Using cached model: {model_path}")
                return model_path
            return await asyncio.to_thread(
                s3_client.download_model, bucket, key, model_path
            )

        if parsed.scheme in ("http", "https"):
            model_path = self.model_dir / (Path(parsed.path).name or "model.pt")
            if model_path.exists():
                logger.info(f"📦 Using cached model: {model_path}")
                return model_path
            if not await self._download_model(self.model_source, model_path):
                raise RuntimeError(f"Download failed: {self.model_source}")
            return model_path

        model_path = Path(self.model_source)
        if not model_path.exists():
            raise FileNotFoundError(f"Model file does not exist: {model_path}")
        return model_path

    async def _download_model(self, model_url: str, save_path: Path) -> bool:
        """
        Download model from URL with retry and timeout
        """
        max_retries = 3
        timeout = 300  # 5 minutes timeout

        save_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = save_path.with_name(save_path.name + ".part")

        for attempt in range(max_retries):
            try:
                logger.info(
                    f"📥 Downloading model from {model_url} "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                timeout_config = aiohttp.ClientTimeout(total=timeout)

                async with aiohttp.ClientSession(timeout=timeout_config) as session:
                    async with session.get(model_url) as response:
                        if response.status == 200:
                            with open(tmp_path, "wb") as f:
                                async for chunk in response.content.iter_chunked(8192):
                                    f.write(chunk)
                            tmp_path.replace(save_path)

                            file_size = save_path.stat().st_size / (1024 * 1024)  # MB
                            logger.info(
                                f"✅ Downloaded: {save_path.name} ({file_size:.1f} MB)"
                            )
                            return True
                        else:
                            logger.error(f"❌ HTTP {response.status}")

            except asyncio.TimeoutError:
                logger.warning(f"⏰ Timeout attempt {attempt + 1}/{max_retries}")
            except aiohttp.ClientError as e:
                logger.warning(
                    f"❌ Download error attempt {attempt + 1}/{max_retries}: {e}"
                )
            finally:
                tmp_path.unlink(missing_ok=True)

            if attempt < max_retries - 1:
                await asyncio.sleep(2**attempt)  # Exponential backoff

        return False


# Singleton instance
model_ai = ModelAI()
