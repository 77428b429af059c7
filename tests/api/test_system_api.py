"""
API Integration Tests for System Endpoints
"""


class TestHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert all(data["services"].values())


class TestStatus:
    def test_status(self, client, image_file):
        client.post("/api/images/utility/clone", files={"image": image_file})

        response = client.get("/api/system/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["uptime"] >= 0
        assert data["memory_usage"]["process_mb"] > 0
        assert data["stored_outputs"] == 1
        assert "cache" in data["engine"]


class TestEngineTuning:
    def test_get_engine(self, client):
        response = client.get("/api/system/engine")

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"config", "cache", "threads", "simd"}

    def test_disable_cache(self, client):
        response = client.put("/api/system/engine", json={"cache_enabled": False})

        assert response.status_code == 200
        assert response.json()["cache"]["enabled"] is False
        assert client.get("/api/system/engine").json()["config"]["cache_enabled"] is False

    def test_cache_counts_repeated_decodes(self, client, image_file):
        client.put("/api/system/engine", json={"cache_enabled": True, "cache_max_items": 8})
        client.post("/api/images/info", files={"image": image_file})
        client.post("/api/images/info", files={"image": image_file})

        cache = client.get("/api/system/engine").json()["cache"]
        assert cache["items"] == 1
        assert cache["hits"] >= 1

    def test_empty_update_rejected(self, client):
        response = client.put("/api/system/engine", json={})

        assert response.status_code == 400

    def test_negative_values_rejected(self, client):
        response = client.put("/api/system/engine", json={"cache_max_items": -1})

        assert response.status_code == 422
