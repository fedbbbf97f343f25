"""Health endpoints: database and broker count, email is informational."""

from app.core import monitoring


class TestHealth:

    def test_basic(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_all_healthy(self, client, monkeypatch):
        async def pong():
            return True

        monkeypatch.setattr(monitoring, "ping_broker", pong)

        body = client.get("/health/detailed").json()

        assert body["database"] == "healthy"
        assert body["broker"] == "healthy"
        assert body["email"] == "not configured"
        assert body["overall"] == "healthy"

    def test_broker_down_is_degraded(self, client, monkeypatch):
        async def unreachable():
            raise ConnectionError("Connection refused")

        monkeypatch.setattr(monitoring, "ping_broker", unreachable)

        body = client.get("/health/detailed").json()

        assert body["broker"].startswith("unhealthy")
        assert body["overall"] == "degraded"
