from datetime import datetime, timedelta, timezone

from conftest import FakeRepository, fake_scope, make_link
from shortlink.main import app
from shortlink.rate_limit import RateLimitResult
from shortlink.redirect.recorder import AccessRecorder
from shortlink.redirect.resolver import RedirectResolver
from shortlink.redirect.router import get_clock, get_rate_limiter, get_resolver


def create_link(client, **payload):
    payload.setdefault("target_url", "https://a.com/home")
    response = client.post("/links", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def add_schedule(client, link_id, start, end, **payload):
    payload.update(start_time=start.isoformat(), end_time=end.isoformat())
    payload.setdefault("target_url", "https://b.com/promo")
    response = client.post(f"/links/{link_id}/schedules", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_plain_link_resolves_and_counts_click(api_client):
    link = create_link(api_client, code="plain")

    response = api_client.post("/redirect/plain", json={})

    assert response.status_code == 200
    assert response.json()["status"] == "redirect"
    assert response.json()["target_url"] == "https://a.com/home"
    assert api_client.get(f"/links/{link['id']}").json()["clicks"] == 1


def test_request_without_body_is_accepted(api_client):
    create_link(api_client, code="nobody")

    assert api_client.post("/redirect/nobody").status_code == 200


def test_unknown_code_is_404(api_client):
    response = api_client.post("/redirect/missing", json={})

    assert response.status_code == 404
    assert response.json()["status"] == "not_found"


def test_inactive_link_is_423(api_client):
    link = create_link(api_client, code="off")
    api_client.patch(f"/links/{link['id']}", json={"is_active": False})

    response = api_client.post("/redirect/off", json={})

    assert response.status_code == 423
    assert response.json()["status"] == "inactive"


def test_expired_link_is_410(api_client):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    link = create_link(api_client, code="old", expires_at=past.isoformat())
    add_schedule(api_client, link["id"], past, past + timedelta(hours=3))

    response = api_client.post("/redirect/old", json={})

    assert response.status_code == 410
    assert response.json()["status"] == "expired"


def test_password_statuses_carry_scope(api_client):
    link = create_link(api_client, code="locked", password="secret")

    needs = api_client.post("/redirect/locked", json={})
    assert needs.status_code == 401
    assert needs.json() == {"status": "needs_credential", "scope": "link", "detail": "Password required"}

    invalid = api_client.post("/redirect/locked", json={"password": "wrong"})
    assert invalid.status_code == 403
    assert invalid.json()["scope"] == "link"

    granted = api_client.post("/redirect/locked", json={"password": "secret"})
    assert granted.status_code == 200
    assert api_client.get(f"/links/{link['id']}").json()["clicks"] == 1


def test_schedule_target_and_password_apply_inside_window(api_client):
    now = datetime(2031, 3, 1, 12, tzinfo=timezone.utc)
    link = create_link(api_client, code="timed")
    add_schedule(api_client, link["id"], now - timedelta(hours=1), now + timedelta(hours=1), password="sched")

    app.dependency_overrides[get_clock] = lambda: (lambda: now)
    needs = api_client.post("/redirect/timed", json={})
    granted = api_client.post("/redirect/timed", json={"password": "sched"})

    assert needs.status_code == 401
    assert needs.json()["scope"] == "schedule"
    assert granted.json()["target_url"] == "https://b.com/promo"

    app.dependency_overrides[get_clock] = lambda: (lambda: now + timedelta(hours=1))
    after = api_client.post("/redirect/timed", json={})
    assert after.json()["target_url"] == "https://a.com/home"


def test_repeated_invalid_passwords_are_rate_limited(api_client):
    create_link(api_client, code="guarded", password="secret")
    headers = {"X-Forwarded-For": "198.51.100.7, 10.0.0.1"}

    statuses = [api_client.post("/redirect/guarded", json={"password": "wrong"}, headers=headers).status_code
                for _ in range(5)]
    blocked = api_client.post("/redirect/guarded", json={"password": "secret"}, headers=headers)
    other_client = api_client.post("/redirect/guarded", json={"password": "secret"},
                                   headers={"X-Forwarded-For": "198.51.100.8"})

    assert statuses == [403] * 5
    assert blocked.status_code == 429
    assert blocked.json()["status"] == "rate_limited"
    assert other_client.status_code == 200


def test_browser_redirect(api_client):
    create_link(api_client, code="go1", target_url="https://example.org/landing")
    create_link(api_client, code="gated", password="secret")

    response = api_client.get("/go1", follow_redirects=False)
    gated = api_client.get("/gated", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "https://example.org/landing"
    assert gated.status_code == 401


def test_storage_failure_is_503_not_404(api_client):
    repository = FakeRepository([make_link()])
    repository.fail_lookup = True
    app.dependency_overrides[get_resolver] = lambda: RedirectResolver(
        repository, AccessRecorder(scope=fake_scope(repository))
    )

    response = api_client.post("/redirect/abc", json={})

    assert response.status_code == 503
    assert response.json()["status"] == "resolution_failure"


def test_health(api_client):
    assert api_client.get("/health").json() == {"status": "ok"}


class OvershotLimiter:
    """Lets every request past the check and reports each failure as over the limit."""

    def __init__(self):
        self.keys = []

    async def is_limited(self, key):
        return False

    async def hit(self, key):
        self.keys.append(key)
        return RateLimitResult(allowed=False, remaining=0, reset_at=None)

    def tick(self):
        return 0


def test_failure_over_the_limit_is_refused_as_rate_limited(api_client):
    create_link(api_client, code="raced", password="secret")
    limiter = OvershotLimiter()
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    wrong = api_client.post("/redirect/raced", json={"password": "wrong"}, headers={"X-Real-IP": "203.0.113.9"})
    right = api_client.post("/redirect/raced", json={"password": "secret"}, headers={"X-Real-IP": "203.0.113.9"})

    assert wrong.status_code == 429
    assert wrong.json()["status"] == "rate_limited"
    assert right.status_code == 200
    assert limiter.keys == ["redirect:raced:203.0.113.9"]
