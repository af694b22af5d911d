"""Health checks, audit trail listing and the response middleware."""

BASE = "/api/v1"


def test_ready(client):
    res = client.get(f"{BASE}/health/ready")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_live_reports_dependencies(client):
    res = client.get(f"{BASE}/health/live")
    assert res.status_code == 200
    checks = res.get_json()["checks"]
    assert checks["database"]["status"] == "ok"
    assert checks["draft_generator"]["status"] == "disabled"
    assert checks["app"]["testing"] is True


def test_security_and_timing_headers(client):
    res = client.get(f"{BASE}/health/ready", headers={"X-Request-ID": "req-123"})
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"
    assert res.headers["X-Request-ID"] == "req-123"
    assert float(res.headers["X-Request-Duration-Ms"]) >= 0


def test_unknown_route_is_json_404(client):
    res = client.get(f"{BASE}/nothing-here")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_audit_filters_and_pagination(client, make_application):
    first = make_application("submitted", student_id="a")
    second = make_application("submitted", student_id="b")
    client.post(f"{BASE}/admin/applications/{first.id}/begin-review", json={})
    client.post(f"{BASE}/admin/applications/{second.id}/begin-review", json={})
    client.post(f"{BASE}/admin/applications/{second.id}/request-offer-letter", json={})

    res = client.get(f"{BASE}/audit?entity_type=application&per_page=2")
    body = res.get_json()
    assert body["total"] == 3
    assert body["pages"] == 2
    assert len(body["audit_logs"]) == 2
    assert body["audit_logs"][0]["action"] == "application.request_offer_letter"

    res = client.get(f"{BASE}/audit?action=application.begin")
    assert res.get_json()["total"] == 2

    log_id = body["audit_logs"][0]["id"]
    assert client.get(f"{BASE}/audit/{log_id}").get_json()["id"] == log_id
    assert client.get(f"{BASE}/audit/99999").status_code == 404
