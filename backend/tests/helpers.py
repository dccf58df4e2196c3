from fastapi.testclient import TestClient

API = "/api/v1"


def register(client: TestClient, email: str = "user@example.com", password: str = "correct-horse") -> dict:
    resp = client.post(f"{API}/auth/register", json={"email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()
