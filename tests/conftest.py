import io

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from main import app
from routes.route_prediction import get_pipeline, get_upload_dir
from services.model_ai import ModelAI
from services.prediction import PredictionPipeline


class FakeModel:
    """Stands in for ModelHandle, returning a fixed score"""

    def __init__(self, score=0.2, error=None):
        self.score = score
        self.error = error
        self.calls = []

    def infer(self, tensor):
        self.calls.append(tensor)
        if self.error is not None:
            raise self.error
        return np.array([self.score], dtype=np.float32)


def make_image_bytes(size=(300, 300), color=(0, 0, 0), fmt="PNG", mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def black_png():
    return make_image_bytes()


@pytest.fixture
def model_service(tmp_path):
    return ModelAI(
        model_source=str(tmp_path / "missing.pt"),
        model_dir=str(tmp_path / "ai_model"),
        load_wait_seconds=1,
    )


@pytest.fixture
def fake_model():
    return FakeModel(score=0.2)


@pytest.fixture
def ready_service(model_service, fake_model):
    model_service.current_model = fake_model
    return model_service


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def client_for(upload_dir):
    """Build a TestClient whose pipeline uses the given model service"""

    def _client(service):
        app.dependency_overrides[get_pipeline] = lambda: PredictionPipeline(service)
        app.dependency_overrides[get_upload_dir] = lambda: upload_dir
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


@pytest.fixture
def client(client_for, ready_service):
    return client_for(ready_service)
