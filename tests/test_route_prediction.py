import os

import pytest
from fastapi.testclient import TestClient

import main
import services.prediction as prediction
from conftest import FakeModel
from routes.route_prediction import get_pipeline, get_upload_dir

GENERIC_FAIL = {"status": "fail", "message": "Terjadi kesalahan dalam melakukan prediksi"}
TOO_LARGE = {
    "status": "fail",
    "message": "File terlalu besar. Maksimal ukuran file adalah 1MB.",
}


def post_image(client, data, filename="image.png", content_type="image/png"):
    return client.post("/predict", files={"image": (filename, data, content_type)})


def test_predict_success_envelope(client, black_png):
    response = post_image(client, black_png)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["message"] == "Model is predicted successfully"
    assert set(body["data"]) == {"id", "result", "suggestion", "createdAt"}
    assert body["data"]["result"] == "Non-cancer"
    assert body["data"]["suggestion"] == "Penyakit kanker tidak terdeteksi."


def test_predict_cancer(client_for, model_service, black_png):
    model_service.current_model = FakeModel(score=0.8)
    response = post_image(client_for(model_service), black_png)

    assert response.status_code == 200
    assert response.json()["data"]["result"] == "Cancer"
    assert response.json()["data"]["suggestion"] == "Segera periksa ke dokter!"


def test_missing_image_field_returns_400(client):
    response = client.post("/predict", data={"other": "value"})

    assert response.status_code == 400
    assert response.json() == GENERIC_FAIL


def test_image_sent_as_text_returns_400(client):
    response = client.post("/predict", data={"image": "not-a-file"})

    assert response.status_code == 400
    assert response.json() == GENERIC_FAIL


def test_random_bytes_return_400(client, fake_model):
    response = post_image(client, os.urandom(10_000), filename="noise.bin")

    assert response.status_code == 400
    assert response.json() == GENERIC_FAIL
    assert fake_model.calls == []


def test_oversized_upload_returns_413_before_decode(client, fake_model, monkeypatch):
    decode_calls = []
    monkeypatch.setattr(
        prediction, "decode_image", lambda data: decode_calls.append(data)
    )

    response = post_image(client, b"\x89PNG" + b"\x00" * (1_000_001 - 4))

    assert response.status_code == 413
    assert response.json() == TOO_LARGE
    assert decode_calls == []
    assert fake_model.calls == []


def test_upload_at_exact_limit_is_admitted(client):
    # Not an image, so it fails decoding rather than the size check
    response = post_image(client, b"\x00" * 1_000_000)

    assert response.status_code == 400
    assert response.json() == GENERIC_FAIL


def test_model_not_loaded_returns_400(client_for, model_service, black_png):
    response = post_image(client_for(model_service), black_png)

    assert response.status_code == 400
    assert response.json() == GENERIC_FAIL


def test_inference_error_returns_400(client_for, model_service, black_png):
    model_service.current_model = FakeModel(error=RuntimeError("boom"))
    response = post_image(client_for(model_service), black_png)

    assert response.status_code == 400
    assert response.json() == GENERIC_FAIL


@pytest.mark.parametrize(
    "data",
    [
        "black_png",
        "noise",
        "oversized",
    ],
)
def test_staged_uploads_are_always_deleted(client, upload_dir, black_png, data):
    payload = {
        "black_png": black_png,
        "noise": os.urandom(2048),
        "oversized": b"\x00" * 1_000_001,
    }[data]

    post_image(client, payload)

    assert list(upload_dir.iterdir()) == []


def test_health_reports_model_state(client_for, model_service, fake_model):
    client = client_for(model_service)
    assert client.get("/health").json() == {"status": "ok", "model_loaded": False}

    model_service.current_model = fake_model
    assert client.get("/health").json() == {"status": "ok", "model_loaded": True}


def test_service_stays_up_when_model_fails_to_load(monkeypatch, tmp_path, black_png):
    monkeypatch.setattr(main.model_ai, "model_source", str(tmp_path / "missing.pt"))
    monkeypatch.setattr(main.model_ai, "_loading_task", None)
    monkeypatch.setitem(main.app.dependency_overrides, get_upload_dir, lambda: tmp_path)

    with TestClient(main.app) as client:
        assert client.get("/health").status_code == 200

        response = post_image(client, black_png)
        assert response.status_code == 400
        assert response.json() == GENERIC_FAIL

    assert main.model_ai.load_error is not None


def test_unwritable_upload_dir_returns_400(ready_service, tmp_path, black_png, monkeypatch):
    not_a_dir = tmp_path / "uploads-file"
    not_a_dir.write_bytes(b"")
    monkeypatch.setitem(
        main.app.dependency_overrides,
        get_pipeline,
        lambda: prediction.PredictionPipeline(ready_service),
    )
    monkeypatch.setitem(main.app.dependency_overrides, get_upload_dir, lambda: not_a_dir)

    response = post_image(TestClient(main.app, raise_server_exceptions=False), black_png)

    assert response.status_code == 400
    assert response.headers["content-type"] == "application/json"
    assert response.json() == GENERIC_FAIL


def test_unexpected_error_returns_generic_envelope(upload_dir, black_png, monkeypatch):
    class BrokenPipeline:
        async def handle_predict(self, image_path):
            raise RuntimeError("unexpected")

    monkeypatch.setitem(
        main.app.dependency_overrides, get_pipeline, BrokenPipeline
    )
    monkeypatch.setitem(main.app.dependency_overrides, get_upload_dir, lambda: upload_dir)

    response = post_image(TestClient(main.app, raise_server_exceptions=False), black_png)

    assert response.status_code == 400
    assert response.json() == GENERIC_FAIL
    assert "unexpected" not in response.text
    assert list(upload_dir.iterdir()) == []
