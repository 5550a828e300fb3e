from __future__ import annotations


def _assert_error_shape(res, *, error: str | None = None):
    data = res.json()
    assert isinstance(data, dict)
    assert isinstance(data.get("error"), str) and data["error"]
    assert isinstance(data.get("message"), str) and data["message"]
    if error is not None:
        assert data["error"] == error


def test_error_shape_401_admin_without_token(client):
    res = client.get("/admin/replay")
    assert res.status_code == 401
    _assert_error_shape(res, error="UNAUTHORIZED")


def test_error_shape_400_bad_stripe_signature(client):
    res = client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=bad"})
    assert res.status_code == 400
    _assert_error_shape(res, error="VALIDATION_ERROR")


def test_error_shape_422_request_validation_error(client, admin_headers):
    res = client.get("/admin/replay", params={"limit": "lots"}, headers=admin_headers)
    assert res.status_code == 422
    _assert_error_shape(res, error="VALIDATION_ERROR")
    body = res.json()
    assert isinstance(body.get("details"), dict)
    assert isinstance(body["details"].get("errors"), list)

