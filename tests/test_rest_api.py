"""REST API endpoint tests."""

import pytest
from fastapi.testclient import TestClient

from aoi_inspection.controller import InspectionController
from aoi_inspection.server.rest_api import create_app
from aoi_inspection.server.service import InspectionService
from aoi_inspection.storage import encode_image_base64
from aoi_inspection.vision.filters import GrayscaleFilter
from aoi_inspection.vision.pipeline import Pipeline


@pytest.fixture
def service(settings):
    return InspectionService.from_settings(settings)


@pytest.fixture
def client(service):
    """FastAPI TestClient fixture."""
    with TestClient(create_app(service)) as c:
        yield c


class TestInfoEndpoints:
    """Server information."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"name": "Inspection API Server", "version": "1.0.0",
                                   "status": "running"}

    def test_status(self, client):
        data = client.get("/api/v1/status").json()
        assert data["status"] == "running"
        assert data["api_port"] == 8080
        assert data["auto_save"] is True
        assert data["controller"]["detector_count"] == 1

    def test_detectors(self, client):
        detectors = client.get("/api/v1/detectors").json()["detectors"]
        assert detectors[0]["index"] == 0
        assert detectors[0]["type"] == "feature"
        assert detectors[0]["parameters"]["mode"] == "adaptive"

    def test_cors_header(self, client):
        response = client.get("/", headers={"Origin": "http://hmi.local"})
        assert response.headers["access-control-allow-origin"] == "*"


class TestInspectEndpoint:
    """POST /api/v1/inspect."""

    def test_inspect_path(self, client, image_file):
        response = client.post("/api/v1/inspect", json={"image_path": str(image_file)})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["isOK"] is True
        assert data["defectCount"] == 0

    def test_inspect_base64(self, client, gray_image):
        payload = {"image": "data:image/png;base64," + encode_image_base64(gray_image)}
        response = client.post("/api/v1/inspect", json=payload)
        assert response.status_code == 200
        assert response.json()["status"] == "OK"

    def test_missing_input(self, client):
        response = client.post("/api/v1/inspect", json={})
        assert response.status_code == 400
        assert response.json()["message"] == "image_path or image is required"

    def test_unreadable_path(self, client, tmp_path):
        response = client.post("/api/v1/inspect", json={"image_path": str(tmp_path / "none.png")})
        assert response.status_code == 400
        assert response.json()["message"].startswith("Failed to load image:")

    def test_invalid_base64(self, client):
        response = client.post("/api/v1/inspect", json={"image": "bm90IGFuIGltYWdl"})
        assert response.status_code == 400

    def test_inspection_failure(self, settings, image_file, broken_filter):
        controller = InspectionController(pipeline=Pipeline([GrayscaleFilter(), broken_filter]))
        with TestClient(create_app(InspectionService(controller, settings))) as client:
            response = client.post("/api/v1/inspect", json={"image_path": str(image_file)})
        assert response.status_code == 500
        assert response.json()["error"] == "Inspection Failed"

    def test_auto_save_writes_results(self, client, service, image_file):
        client.post("/api/v1/inspect", json={"image_path": str(image_file)})
        assert service.results_csv.exists()


class TestConfigAndStatistics:
    """Runtime configuration and counters."""

    def test_update_config(self, client, service):
        response = client.post("/api/v1/config",
                               json={"visualization_enabled": False, "auto_save": False})
        assert response.json() == {"status": "ok", "message": "Configuration updated"}
        assert service.controller.config.visualization_enabled is False
        assert service.auto_save is False

    def test_partial_config_leaves_other_values(self, client, service):
        client.post("/api/v1/config", json={"auto_save": False})
        assert service.controller.config.visualization_enabled is True

    def test_statistics(self, client, image_file):
        client.post("/api/v1/inspect", json={"image_path": str(image_file)})
        client.post("/api/v1/inspect", json={"image_path": "/no/such/file.png"})

        data = client.get("/api/v1/statistics").json()
        assert data["server"]["total_requests"] == 2
        assert data["server"]["successful_requests"] == 1
        assert data["server"]["failed_requests"] == 1
        assert data["controller"]["total_inspections"] == 1
