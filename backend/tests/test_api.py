from html2png.core.errors import HistoryWriteError, RenderError
from html2png.services.history import ConversionHistory
from html2png.services.registration import REGISTRATION_ENABLED_KEY, set_setting
from tests.fakes import png_size
from tests.helpers import API, register


class TestAuth:
    def test_register_returns_token_and_sets_cookie(self, client):
        resp = client.post(f"{API}/auth/register", json={"email": "New@Example.com", "password": "correct-horse"})

        assert resp.status_code == 201
        body = resp.json()
        assert body["user"]["email"] == "new@example.com"
        assert body["token_type"] == "bearer"
        assert body["access_token"]
        assert resp.cookies.get("token") == body["access_token"]
        assert "httponly" in resp.headers["set-cookie"].lower()

    def test_duplicate_email_conflicts(self, client):
        register(client, "dup@example.com")
        resp = client.post(f"{API}/auth/register", json={"email": "DUP@example.com", "password": "correct-horse"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_weak_password_rejected(self, client):
        resp = client.post(f"{API}/auth/register", json={"email": "weak@example.com", "password": "short"})
        assert resp.status_code == 400

    def test_registration_gate(self, client, db):
        set_setting(db, REGISTRATION_ENABLED_KEY, "false")
        resp = client.post(f"{API}/auth/register", json={"email": "late@example.com", "password": "correct-horse"})
        assert resp.status_code == 403

    def test_login_and_me(self, client):
        register(client, "me@example.com")
        client.cookies.clear()

        resp = client.post(f"{API}/auth/login", json={"email": "me@example.com", "password": "correct-horse"})
        assert resp.status_code == 200
        token = resp.json()["access_token"]

        me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "me@example.com"
        assert me.json()["is_admin"] is False

    def test_login_failure_is_generic(self, client):
        register(client, "me@example.com")
        wrong_password = client.post(f"{API}/auth/login", json={"email": "me@example.com", "password": "nope-nope"})
        unknown_user = client.post(f"{API}/auth/login", json={"email": "ghost@example.com", "password": "nope-nope"})

        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json()["error"]["message"] == unknown_user.json()["error"]["message"]

    def test_logout_revokes_token(self, client):
        token = register(client)["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        assert client.post(f"{API}/auth/logout", headers=headers).status_code == 200
        client.cookies.clear()

        assert client.get(f"{API}/auth/me", headers=headers).status_code == 401

    def test_logout_revokes_cookie_session(self, client):
        token = register(client)["access_token"]
        assert client.post(f"{API}/auth/logout").status_code == 200

        client.cookies.set("token", token)
        assert client.get(f"{API}/auth/me").status_code == 401

    def test_change_password(self, client, auth_headers):
        resp = client.post(
            f"{API}/auth/change-password",
            json={"current_password": "correct-horse", "new_password": "battery-staple"},
            headers=auth_headers,
        )
        assert resp.status_code == 200

        client.cookies.clear()
        old = client.post(f"{API}/auth/login", json={"email": "user@example.com", "password": "correct-horse"})
        new = client.post(f"{API}/auth/login", json={"email": "user@example.com", "password": "battery-staple"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_change_password_requires_current(self, client, auth_headers):
        resp = client.post(
            f"{API}/auth/change-password",
            json={"current_password": "wrong-one", "new_password": "battery-staple"},
            headers=auth_headers,
        )
        assert resp.status_code == 400


class TestCredentialResolution:
    def test_no_credentials_is_401(self, client):
        resp = client.post(f"{API}/convert", json={"html": "<p>x</p>"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_api_key_is_tried_first(self, client):
        owner_token = register(client, "owner@example.com")["access_token"]
        created = client.post(
            f"{API}/keys", json={"name": "ci"}, headers={"Authorization": f"Bearer {owner_token}"}
        ).json()
        other_token = register(client, "other@example.com")["access_token"]
        client.cookies.clear()

        me = client.get(
            f"{API}/auth/me",
            headers={"x-api-key": created["api_key"], "Authorization": f"Bearer {other_token}"},
        )
        assert me.json()["email"] == "owner@example.com"

    def test_bad_api_key_does_not_fall_back_to_bearer(self, client):
        token = register(client)["access_token"]
        client.cookies.clear()
        resp = client.get(f"{API}/auth/me", headers={"x-api-key": "h2p_bogus", "Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_bearer_wins_over_cookie(self, client):
        register(client, "cookie@example.com")
        bearer = register(client, "bearer@example.com")["access_token"]
        # The cookie jar now holds the second registration; log the first one back in.
        client.cookies.clear()
        cookie_token = client.post(
            f"{API}/auth/login", json={"email": "cookie@example.com", "password": "correct-horse"}
        ).json()["access_token"]
        assert client.cookies.get("token") == cookie_token

        me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {bearer}"})
        assert me.json()["email"] == "bearer@example.com"

    def test_cookie_alone_authenticates(self, client):
        register(client, "cookie@example.com")
        me = client.get(f"{API}/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "cookie@example.com"


class TestApiKeys:
    def test_create_list_delete(self, client, auth_headers):
        created = client.post(f"{API}/keys", json={"name": "deploy"}, headers=auth_headers)
        assert created.status_code == 201
        body = created.json()
        assert body["api_key"].startswith("h2p_")
        assert body["key_prefix"] == body["api_key"][:8] + "..."

        listed = client.get(f"{API}/keys", headers=auth_headers).json()
        assert [k["id"] for k in listed] == [body["id"]]
        assert "api_key" not in listed[0]
        assert "key_hash" not in listed[0]

        assert client.delete(f"{API}/keys/{body['id']}", headers=auth_headers).status_code == 200
        assert client.get(f"{API}/keys", headers=auth_headers).json() == []
        assert client.delete(f"{API}/keys/{body['id']}", headers=auth_headers).status_code == 404

    def test_deleted_key_stops_working(self, client, auth_headers):
        body = client.post(f"{API}/keys", json={}, headers=auth_headers).json()
        client.cookies.clear()
        key_headers = {"x-api-key": body["api_key"]}

        assert client.get(f"{API}/auth/me", headers=key_headers).status_code == 200
        client.delete(f"{API}/keys/{body['id']}", headers=auth_headers)
        assert client.get(f"{API}/auth/me", headers=key_headers).status_code == 401

    def test_last_used_is_reported(self, client, auth_headers):
        body = client.post(f"{API}/keys", json={}, headers=auth_headers).json()
        assert client.get(f"{API}/keys", headers=auth_headers).json()[0]["last_used_at"] is None

        client.get(f"{API}/auth/me", headers={"x-api-key": body["api_key"]})
        assert client.get(f"{API}/keys", headers=auth_headers).json()[0]["last_used_at"] is not None


class TestConvert:
    def test_returns_png_of_requested_width(self, client, auth_headers, fake_renderer):
        resp = client.post(f"{API}/convert", json={"html": "<h1>Hello</h1>", "width": 800}, headers=auth_headers)

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert resp.headers["content-disposition"] == 'attachment; filename="screenshot.png"'
        width, _ = png_size(resp.content)
        assert width == 800
        assert fake_renderer.requests[0].height is None
        assert fake_renderer.requests[0].full_page is False

    def test_success_carries_quota_headers(self, client, auth_headers):
        resp = client.post(f"{API}/convert", json={"html": "<p>x</p>"}, headers=auth_headers)

        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "30"
        assert resp.headers["X-RateLimit-Remaining"] == "29"
        assert int(resp.headers["X-RateLimit-Reset"]) > 0
        assert "Retry-After" not in resp.headers
        assert resp.headers["content-disposition"] == 'attachment; filename="screenshot.png"'

    def test_defaults(self, client, auth_headers, fake_renderer):
        client.post(f"{API}/convert", json={"html": "<p>x</p>"}, headers=auth_headers)
        request = fake_renderer.requests[0]
        assert request.width == 1200
        assert request.dpr == 1

    def test_dpr_scales_pixels(self, client, auth_headers):
        resp = client.post(
            f"{API}/convert", json={"html": "<p>x</p>", "width": 400, "height": 300, "dpr": 2}, headers=auth_headers
        )
        assert png_size(resp.content) == (800, 600)

    def test_full_page_alias(self, client, auth_headers, fake_renderer):
        client.post(f"{API}/convert", json={"html": "<p>x</p>", "fullPage": True}, headers=auth_headers)
        assert fake_renderer.requests[0].full_page is True

    def test_records_history(self, client, auth_headers):
        resp = client.post(f"{API}/convert", json={"html": "<h1>Hello</h1>", "width": 800}, headers=auth_headers)

        listing = client.get(f"{API}/conversions", headers=auth_headers).json()
        assert listing["total"] == 1
        item = listing["conversions"][0]
        assert item["html_preview"] == "<h1>Hello</h1>"
        assert item["html"] == "<h1>Hello</h1>"
        assert item["byte_size"] == len(resp.content)
        assert item["width"] == 800

    def test_long_html_preview_truncated(self, client, auth_headers):
        html = "<div>" + "y" * 2000 + "</div>"
        client.post(f"{API}/convert", json={"html": html}, headers=auth_headers)

        item = client.get(f"{API}/conversions", headers=auth_headers).json()["conversions"][0]
        assert item["html_preview"] == html[:500] + "..."
        assert item["html"] == html

    def test_history_failure_still_returns_image(self, client, auth_headers, monkeypatch):
        def broken_record(self, *args, **kwargs):
            raise HistoryWriteError(details={"error": "database is locked"})

        monkeypatch.setattr(ConversionHistory, "record", broken_record)

        resp = client.post(f"{API}/convert", json={"html": "<p>x</p>"}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.content.startswith(b"\x89PNG")

    def test_validation(self, client, auth_headers, fake_renderer):
        bad = [
            {"html": ""},
            {"html": "<p>x</p>", "width": 99},
            {"html": "<p>x</p>", "width": 4097},
            {"html": "<p>x</p>", "height": 10_001},
            {"html": "<p>x</p>", "dpr": 4},
            {"width": 800},
        ]
        for payload in bad:
            assert client.post(f"{API}/convert", json=payload, headers=auth_headers).status_code == 422, payload
        assert fake_renderer.requests == []

    def test_render_failure_is_generic_500(self, client, auth_headers, fake_renderer, monkeypatch):
        fake_renderer.fail_with = RenderError(stage="content_loaded", detail="net::ERR_ABORTED")
        monkeypatch.setattr("html2png.main.settings.ENVIRONMENT", "production")

        resp = client.post(f"{API}/convert", json={"html": "<p>x</p>"}, headers=auth_headers)

        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["message"] == "Conversion failed"
        assert "details" not in error
        assert client.get(f"{API}/conversions", headers=auth_headers).json()["total"] == 0

    def test_render_failure_detail_in_development(self, client, auth_headers, fake_renderer):
        fake_renderer.fail_with = RenderError(stage="content_loaded", detail="net::ERR_ABORTED")

        resp = client.post(f"{API}/convert", json={"html": "<p>x</p>"}, headers=auth_headers)

        assert resp.status_code == 500
        assert resp.json()["error"]["details"] == {"stage": "content_loaded", "message": "net::ERR_ABORTED"}

    def test_api_key_can_convert(self, client, auth_headers):
        key = client.post(f"{API}/keys", json={}, headers=auth_headers).json()["api_key"]
        client.cookies.clear()
        resp = client.post(f"{API}/convert", json={"html": "<p>x</p>"}, headers={"x-api-key": key})
        assert resp.status_code == 200


class TestConversions:
    def test_paging_and_delete(self, client, auth_headers):
        for i in range(3):
            client.post(f"{API}/convert", json={"html": f"<p>{i}</p>"}, headers=auth_headers)

        page = client.get(f"{API}/conversions?limit=2&offset=0", headers=auth_headers).json()
        assert page["total"] == 3
        assert page["limit"] == 2
        assert [c["html"] for c in page["conversions"]] == ["<p>2</p>", "<p>1</p>"]

        target = page["conversions"][0]["id"]
        assert client.get(f"{API}/conversions/{target}", headers=auth_headers).status_code == 200
        assert client.delete(f"{API}/conversions/{target}", headers=auth_headers).status_code == 200
        assert client.delete(f"{API}/conversions/{target}", headers=auth_headers).status_code == 404
        assert client.get(f"{API}/conversions", headers=auth_headers).json()["total"] == 2

    def test_limit_clamped(self, client, auth_headers):
        body = client.get(f"{API}/conversions?limit=1000", headers=auth_headers).json()
        assert body["limit"] == 100

    def test_other_users_records_are_hidden(self, client, auth_headers):
        client.post(f"{API}/convert", json={"html": "<p>mine</p>"}, headers=auth_headers)
        record_id = client.get(f"{API}/conversions", headers=auth_headers).json()["conversions"][0]["id"]

        other_token = register(client, "other@example.com")["access_token"]
        other = {"Authorization": f"Bearer {other_token}"}
        assert client.get(f"{API}/conversions", headers=other).json()["total"] == 0
        assert client.get(f"{API}/conversions/{record_id}", headers=other).status_code == 404
        assert client.delete(f"{API}/conversions/{record_id}", headers=other).status_code == 404


class TestRateLimits:
    def test_auth_quota_then_429_with_headers(self, client):
        for _ in range(10):
            resp = client.post(f"{API}/auth/login", json={"email": "x@example.com", "password": "whatever1"})
            assert resp.status_code == 401

        resp = client.post(f"{API}/auth/login", json={"email": "x@example.com", "password": "whatever1"})

        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
        assert resp.headers["X-RateLimit-Limit"] == "10"
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        assert int(resp.headers["X-RateLimit-Reset"]) > 0
        assert 0 < int(resp.headers["Retry-After"]) <= 60

    def test_limit_checked_before_credentials(self, client):
        for _ in range(30):
            client.post(f"{API}/convert", json={"html": "<p>x</p>"})
        resp = client.post(f"{API}/convert", json={"html": "<p>x</p>"})
        assert resp.status_code == 429

    def test_allowed_responses_carry_quota_headers(self, client, auth_headers):
        resp = client.get(f"{API}/conversions", headers=auth_headers)
        assert resp.headers["X-RateLimit-Limit"] == "100"
        assert int(resp.headers["X-RateLimit-Remaining"]) == 99

    def test_forwarded_clients_counted_separately(self, client):
        for _ in range(10):
            client.post(f"{API}/auth/login", json={"email": "x@example.com", "password": "whatever1"})
        resp = client.post(
            f"{API}/auth/login",
            json={"email": "x@example.com", "password": "whatever1"},
            headers={"X-Forwarded-For": "198.51.100.4"},
        )
        assert resp.status_code == 401


class TestHealthAndMiddleware:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["playwright"]["available"] is True
        assert body["browser_running"] is False

    def test_request_id_echoed(self, client):
        resp = client.get("/health", headers={"x-request-id": "abc123"})
        assert resp.headers["x-request-id"] == "abc123"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    def test_error_body_carries_request_id(self, client):
        resp = client.get(f"{API}/auth/me", headers={"x-request-id": "req-1"})
        assert resp.json()["error"]["request_id"] == "req-1"
