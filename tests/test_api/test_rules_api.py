"""Tests for the alert rule endpoints."""

import pytest

RULE_BODY = {
    "name": "Critical cost to Slack",
    "conditions": [{"metric": "severity", "operator": "eq", "value": "critical"}],
    "actions": [
        {"type": "slack", "config": {"channel": "#cost"}},
        {"type": "email", "config": {"recipients": ["ops@example.com"]}, "delay_minutes": 15},
    ],
    "priority": 2,
}


@pytest.fixture
def rule(client):
    resp = client.post("/rules", json=RULE_BODY)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestRulesApi:

    def test_create(self, rule):
        assert rule["rule_id"]
        assert rule["priority"] == 2
        assert rule["actions"][1]["delay_minutes"] == 15
        assert rule["conditions"][0]["value"] == "critical"

    def test_create_requires_actions(self, client):
        resp = client.post("/rules", json={**RULE_BODY, "actions": []})
        assert resp.status_code == 422

    def test_create_invalid_action_type(self, client):
        resp = client.post("/rules", json={**RULE_BODY, "actions": [{"type": "pager"}]})
        assert resp.status_code == 422
        assert resp.json()["error_type"] == "validation"

    def test_create_invalid_condition_operator(self, client):
        body = {**RULE_BODY, "conditions": [{"metric": "severity", "operator": "like", "value": "x"}]}
        assert client.post("/rules", json=body).status_code == 422

    def test_list_in_priority_order(self, client, rule):
        first = client.post("/rules", json={**RULE_BODY, "name": "First", "priority": 1}).json()
        client.post("/rules", json={**RULE_BODY, "name": "Off", "enabled": False})

        data = client.get("/rules").json()
        assert data["total"] == 3
        assert data["rules"][0]["rule_id"] == first["rule_id"]

        enabled = client.get("/rules", params={"enabled": "true"}).json()
        assert enabled["total"] == 2

    def test_get_and_missing(self, client, rule):
        assert client.get(f"/rules/{rule['rule_id']}").json() == rule
        assert client.get("/rules/missing").status_code == 404

    def test_patch(self, client, rule):
        resp = client.patch(f"/rules/{rule['rule_id']}", json={"enabled": False, "priority": 9})
        assert resp.status_code == 200
        assert resp.json()["enabled"] is False
        assert resp.json()["priority"] == 9
        assert resp.json()["actions"] == rule["actions"]

    def test_patch_empty(self, client, rule):
        assert client.patch(f"/rules/{rule['rule_id']}", json={}).status_code == 422

    def test_delete(self, client, rule):
        assert client.delete(f"/rules/{rule['rule_id']}").status_code == 204
        assert client.delete(f"/rules/{rule['rule_id']}").status_code == 404
