"""HTTP-level tests for the tracking, admin and public routers."""

import pytest

from visit_tracker.core.enums import ActorRole

pytestmark = pytest.mark.integration

LOCATION = {"latitude": -23.5510, "longitude": -46.6340, "accuracy": 8.0}


def _start(client, headers, payload):
    response = client.post("/v1/tracking/start", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _share(client, headers, phone="+55 11 98765-4321", name="Ana"):
    response = client.post(
        "/v1/tracking/visit-1/share",
        json={"name": name, "phone": phone, "relationship": "sister"},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


def _token(shared):
    return shared["tracking_url"].rsplit("/", 1)[1]


class TestTrackingEndpoints:
    def test_start_tracking(self, client, pro_headers, start_payload):
        body = _start(client, pro_headers, start_payload())

        assert body["visit_id"] == "visit-1"
        assert body["professional_id"] == "pro-1"
        assert body["is_active"] is True
        assert body["missed_check_ins"] == 0
        assert body["patient_address"]["district"] == "Centro"

    def test_duplicate_start_is_problem_json(self, client, pro_headers, start_payload):
        _start(client, pro_headers, start_payload())

        response = client.post("/v1/tracking/start", json=start_payload(), headers=pro_headers)

        assert response.status_code == 409
        assert response.headers["content-type"].startswith("application/problem+json")
        problem = response.json()
        assert problem["status"] == 409
        assert problem["title"] == "Tracking Already Active"
        assert problem["instance"] == "/v1/tracking/start"

    def test_missing_token_is_401(self, client, start_payload):
        response = client.post("/v1/tracking/start", json=start_payload())

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")

    def test_monitoring_cannot_start(self, client, monitor_headers, start_payload):
        response = client.post(
            "/v1/tracking/start", json=start_payload(), headers=monitor_headers
        )
        assert response.status_code == 403

    def test_validation_error_lists_fields(self, client, pro_headers, start_payload):
        payload = start_payload(interval=0)

        response = client.post("/v1/tracking/start", json=payload, headers=pro_headers)

        assert response.status_code == 422
        problem = response.json()
        assert problem["title"] == "Validation Error"
        assert any("check_in_interval_minutes" in e["loc"] for e in problem["errors"])

    def test_check_in_and_catch_up(self, client, pro_headers, start_payload, clock):
        _start(client, pro_headers, start_payload())
        clock.advance(minutes=5)

        response = client.post(
            "/v1/tracking/visit-1/check-in",
            json={"location": LOCATION, "message": "Arrived"},
            headers=pro_headers,
        )
        assert response.status_code == 200
        assert response.json()["last_known_location"]["latitude"] == LOCATION["latitude"]

        client.post(
            "/v1/tracking/visit-1/location", json={"location": LOCATION}, headers=pro_headers
        )
        events = client.get(
            "/v1/tracking/visit-1/events", params={"since_seq": 1}, headers=pro_headers
        ).json()

        assert [e["seq"] for e in events["events"]] == [2, 3]
        assert [e["type"] for e in events["events"]] == ["check_in", "location_update"]
        assert events["latest_seq"] == 3
        assert events["events"][0]["metadata"] == {"message": "Arrived"}

    def test_other_professional_is_forbidden(
        self, client, pro_headers, auth_headers_for, start_payload
    ):
        _start(client, pro_headers, start_payload())
        other = auth_headers_for("pro-2", ActorRole.PROFESSIONAL)

        response = client.post(
            "/v1/tracking/visit-1/check-in", json={"location": LOCATION}, headers=other
        )

        assert response.status_code == 403
        assert client.get("/v1/tracking/visit-1", headers=other).status_code == 403

    def test_unknown_visit_is_404(self, client, pro_headers):
        response = client.post(
            "/v1/tracking/visit-404/check-in", json={"location": LOCATION}, headers=pro_headers
        )
        assert response.status_code == 404

    def test_check_out_and_active_session(self, client, pro_headers, start_payload):
        _start(client, pro_headers, start_payload())
        active = client.get("/v1/tracking/professional/active", headers=pro_headers)
        assert active.json()["visit_id"] == "visit-1"

        response = client.post(
            "/v1/tracking/visit-1/check-out", json={"location": LOCATION}, headers=pro_headers
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        active = client.get("/v1/tracking/professional/active", headers=pro_headers)
        assert active.status_code == 200
        assert active.json() is None

        again = client.post(
            "/v1/tracking/visit-1/check-out", json={"location": LOCATION}, headers=pro_headers
        )
        assert again.status_code == 409

    def test_panic_is_dispatched_after_response(
        self, client, pro_headers, start_payload, notifier
    ):
        _start(client, pro_headers, start_payload())

        response = client.post(
            "/v1/tracking/visit-1/panic",
            json={"level": "emergency", "location": LOCATION},
            headers=pro_headers,
        )

        assert response.status_code == 201
        assert response.json()["police_notified"] is True
        assert [n["payload"]["level"] for n in notifier.sent] == ["emergency"]

    def test_share_limit_and_revoke(self, client, pro_headers, start_payload):
        _start(client, pro_headers, start_payload())
        for n in range(3):
            _share(client, pro_headers, phone=f"+55 11 90000-000{n}", name=f"C{n}")

        over = client.post(
            "/v1/tracking/visit-1/share",
            json={"name": "C3", "phone": "+5511900000003", "relationship": "friend"},
            headers=pro_headers,
        )
        assert over.status_code == 409
        assert over.json()["title"] == "Too Many Shared Contacts"

        revoked = client.delete(
            "/v1/tracking/visit-1/share/+5511900000001", headers=pro_headers
        )
        assert revoked.status_code == 204

        _share(client, pro_headers, phone="+5511900000003", name="C3")

    def test_share_response_hides_raw_token(self, client, pro_headers, start_payload):
        _start(client, pro_headers, start_payload())

        shared = _share(client, pro_headers)

        assert "token" not in shared
        assert shared["phone"] == "+5511987654321"
        assert shared["relationship"] == "sister"


class TestAdminEndpoints:
    def test_admin_routes_require_monitoring(self, client, pro_headers):
        assert client.post("/v1/admin/tracking/sweep", headers=pro_headers).status_code == 403
        assert client.get("/v1/admin/tracking/active-alerts").status_code == 401

    def test_missed_check_ins_and_sweep(
        self, client, pro_headers, monitor_headers, start_payload, clock, notifier
    ):
        _start(client, pro_headers, start_payload())
        clock.advance(minutes=40)

        overdue = client.get(
            "/v1/admin/tracking/missed-check-ins", headers=monitor_headers
        ).json()
        assert [(o["visit_id"], o["minutes_overdue"]) for o in overdue] == [("visit-1", 10)]

        swept = client.post("/v1/admin/tracking/sweep", headers=monitor_headers).json()
        assert [r["missed_check_ins"] for r in swept["recorded"]] == [1]
        assert [n["severity"].value for n in notifier.sent] == ["warning"]

    def test_respond_to_active_alert(
        self, client, pro_headers, monitor_headers, start_payload
    ):
        _start(client, pro_headers, start_payload())
        client.post(
            "/v1/tracking/visit-1/panic",
            json={"level": "help_needed", "location": LOCATION},
            headers=pro_headers,
        )

        alerts = client.get("/v1/admin/tracking/active-alerts", headers=monitor_headers)
        [entry] = alerts.json()["alerts"]
        assert entry["visit_id"] == "visit-1"
        assert entry["alert"]["level"] == "help_needed"

        response = client.post(
            "/v1/admin/tracking/visit-1/panic/respond",
            json={"resolution": "Called the professional", "outcome": "resolved"},
            headers=monitor_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "resolved"

        again = client.post(
            "/v1/admin/tracking/visit-1/panic/respond",
            json={"resolution": "Again"},
            headers=monitor_headers,
        )
        assert again.status_code == 409

    def test_active_alerts_include_escalation(
        self, client, pro_headers, monitor_headers, start_payload
    ):
        _start(client, pro_headers, start_payload())
        for level in ("help_needed", "emergency"):
            client.post(
                "/v1/tracking/visit-1/panic",
                json={"level": level, "location": LOCATION},
                headers=pro_headers,
            )

        [entry] = client.get(
            "/v1/admin/tracking/active-alerts", headers=monitor_headers
        ).json()["alerts"]

        assert [a["level"] for a in entry["alerts"]] == ["help_needed", "emergency"]
        assert entry["alert"]["level"] == "help_needed"

        client.post(
            "/v1/admin/tracking/visit-1/panic/respond",
            json={"resolution": "Called the professional"},
            headers=monitor_headers,
        )
        [entry] = client.get(
            "/v1/admin/tracking/active-alerts", headers=monitor_headers
        ).json()["alerts"]
        assert [a["level"] for a in entry["alerts"]] == ["emergency"]
        assert entry["alert"]["police_notified"] is True

    def test_respond_rejects_active_outcome(
        self, client, pro_headers, monitor_headers, start_payload
    ):
        _start(client, pro_headers, start_payload())
        client.post(
            "/v1/tracking/visit-1/panic",
            json={"level": "emergency", "location": LOCATION},
            headers=pro_headers,
        )

        response = client.post(
            "/v1/admin/tracking/visit-1/panic/respond",
            json={"resolution": "n/a", "outcome": "active"},
            headers=monitor_headers,
        )
        assert response.status_code == 422


class TestPublicEndpoint:
    def test_public_view(self, client, pro_headers, start_payload):
        _start(client, pro_headers, start_payload())
        token = _token(_share(client, pro_headers))

        response = client.get(f"/v1/public/track/{token}")

        assert response.status_code == 200
        body = response.json()
        assert body["professional_first_name"] == "Maria"
        assert body["service_category"] == "Wound care"
        assert body["patient_district"] == "Centro"
        assert body["panic_active"] is False
        assert "Rua das Flores" not in response.text

    def test_bad_links_are_indistinguishable(
        self, client, pro_headers, start_payload, clock
    ):
        _start(client, pro_headers, start_payload())
        revoked = _token(_share(client, pro_headers, phone="+5511900000001"))
        client.delete("/v1/tracking/visit-1/share/+5511900000001", headers=pro_headers)
        response = client.post(
            "/v1/tracking/visit-1/share",
            json={
                "name": "Temp",
                "phone": "+5511900000002",
                "relationship": "neighbour",
                "expires_in_minutes": 5,
            },
            headers=pro_headers,
        )
        expired = _token(response.json())
        clock.advance(minutes=10)

        bodies = []
        for token in ("Z" * 43, revoked, expired):
            response = client.get(f"/v1/public/track/{token}")
            assert response.status_code == 404
            body = response.json()
            bodies.append((body["title"], body["detail"]))

        assert len(set(bodies)) == 1

    def test_public_lookups_are_rate_limited(self, client, app_config):
        statuses = [
            client.get(f"/v1/public/track/{'Q' * 43}").status_code
            for _ in range(app_config.rate_limit_public_requests + 1)
        ]

        assert set(statuses[:-1]) == {404}
        assert statuses[-1] == 429


class TestServiceEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": True, "config": True}
