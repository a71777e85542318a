def _register(client, name: str = "Ana Cruz", team: str = "Alpha", role: str = "student") -> dict:
    client.post("/teams", json={"name": team})
    response = client.post("/people", json={"full_name": name, "team_name": team, "role": role})
    assert response.status_code == 201
    return response.json()


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_batch_scan_rejects_other_methods(client) -> None:
    response = client.get("/api/scan")
    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}
    assert response.headers["allow"] == "POST"


def test_batch_scan_rejects_malformed_body(client) -> None:
    assert client.post("/api/scan", json={"uuids": "abc"}).status_code == 400
    response = client.post("/api/scan", content=b"not json", headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_batch_scan_results(client) -> None:
    person = _register(client)
    response = client.post(
        "/api/scan",
        json={"uuids": [person["badge_uuid"], " ", "ghost", person["badge_uuid"]], "mode": "time-in"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "results": [
            {"uuid": person["badge_uuid"], "status": "ok"},
            {"uuid": "ghost", "status": "missing"},
            {"uuid": person["badge_uuid"], "status": "duplicate"},
        ]
    }

    out = client.post("/api/scan", json={"uuids": [person["badge_uuid"]], "mode": "time-out"})
    assert out.json()["results"][0]["status"] == "ok"


def test_batch_check_out_without_session_reports_not_checked_in(client) -> None:
    person = _register(client)
    response = client.post("/api/scan", json={"uuids": [person["badge_uuid"]], "mode": "time-out"})
    assert response.json() == {"results": [{"uuid": person["badge_uuid"], "status": "not_checked_in"}]}

    # The interactive route keeps the finer distinction.
    single = client.post("/scan", json={"badge_id": person["badge_uuid"], "action": "check-out"})
    assert single.json()["status"] == "no_active_session"


def test_interactive_scan_and_logbook(client) -> None:
    person = _register(client)
    first = client.post("/scan", json={"badge_id": person["badge_uuid"], "action": "check-in"})
    assert first.status_code == 200
    assert first.json()["status"] == "ok"
    assert first.json()["logbook"] == "general"

    logbook = client.get("/logbook", params={"status": "in"}).json()
    assert logbook["stats"]["currently_in"] == 1
    assert logbook["items"][0]["full_name"] == "Ana Cruz"

    attendance = client.get(f"/people/{person['badge_uuid']}/attendance")
    assert attendance.json()["checked_in"] is True
    assert client.get("/people/nobody/attendance").status_code == 404


def test_score_flow_and_error_mapping(client) -> None:
    team = client.post("/teams", json={"name": "Alpha"}).json()
    assert client.post("/teams", json={"name": "Alpha"}).status_code == 409

    applied = client.post(f"/teams/{team['id']}/score", json={"delta": -200, "reason": "Penalty"})
    assert applied.status_code == 200
    assert applied.json()["new_score"] == 0

    assert client.post(f"/teams/{team['id']}/score", json={"delta": 5, "reason": " "}).status_code == 400
    assert client.post("/teams/999/score", json={"delta": 5, "reason": "Quiz"}).status_code == 404

    history = client.get("/score-logs").json()
    assert history["totals"]["demerit"] == -200

    recalculated = client.post("/scores/recalculate").json()
    assert recalculated["teams"] == {"Alpha": 0}

    entry_id = history["items"][0]["id"]
    assert client.delete(f"/score-logs/{entry_id}").json()["new_score"] == 200


def test_self_edit_limit_maps_to_conflict(client) -> None:
    person = _register(client)
    badge = person["badge_uuid"]
    assert client.patch(f"/people/self/{badge}", json={"full_name": "Ana B"}).status_code == 200
    assert client.patch(f"/people/self/{badge}", json={"full_name": "Ana C"}).status_code == 200
    assert client.patch(f"/people/self/{badge}", json={"full_name": "Ana D"}).status_code == 409


def test_scoreboard_reveal_endpoints(client) -> None:
    alpha = client.post("/teams", json={"name": "Alpha"}).json()
    client.post("/teams", json={"name": "Beta"})
    client.post(f"/teams/{alpha['id']}/score", json={"delta": 10, "reason": "Quiz"})

    assert client.post("/scoreboard/reveal/winner").status_code == 409
    started = client.post("/scoreboard/reveal/start", json={"countdown": 1})
    assert started.json()["reveal_state"] == "countdown"
    assert client.post("/scoreboard/reveal/tick").json()["countdown"] == 0
    assert client.post("/scoreboard/reveal/winner").json()["reveal_state"] == "winner"

    board = client.get("/scoreboard").json()
    assert board["winner"]["name"] == "Alpha"
    assert board["winner"]["score"] == 160

    hidden = client.patch("/scoreboard/settings", json={"hide_scores": True})
    assert hidden.json()["hide_scores"] is True
    assert all(row["score"] is None for row in client.get("/scoreboard").json()["teams"])
    assert client.post("/scoreboard/reveal/rewind").status_code == 404


def test_audit_log_endpoint(client) -> None:
    _register(client)
    actions = [row["action"] for row in client.get("/audit-logs").json()]
    assert actions == ["REGISTER", "CREATE_TEAM"]
