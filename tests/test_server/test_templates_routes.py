"""Tests for the /templates endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cronx.scheduler.models import ExecutionResult
from cronx.server.app import create_app


@pytest.fixture
def client(test_settings, store, template, mock_executor):
    app = create_app(test_settings, store=store, http_executor=mock_executor)
    with TestClient(app) as c:
        yield c


def test_list_templates(client, template):
    [data] = client.get("/templates").json()
    assert data["id"] == template.id
    assert data["url"] == template.url


def test_create_and_delete_template(client, store):
    resp = client.post(
        "/templates",
        json={"name": "Health", "url": "https://svc.test/health", "method": "HEAD"},
    )
    assert resp.status_code == 201
    template_id = resp.json()["id"]
    assert store.get_template(template_id).method == "HEAD"

    assert client.get(f"/templates/{template_id}").json()["name"] == "Health"
    assert client.delete(f"/templates/{template_id}").status_code == 204
    assert store.get_template(template_id) is None
    assert client.delete(f"/templates/{template_id}").status_code == 404


def test_create_template_rejects_bad_method(client):
    resp = client.post("/templates", json={"name": "x", "url": "https://a.test", "method": "FETCH"})
    assert resp.status_code == 422


def test_get_unknown_template_404(client):
    assert client.get("/templates/missing").status_code == 404


def test_test_saved_template_records_nothing(client, store, template, mock_executor):
    resp = client.post(f"/templates/{template.id}/test")
    assert resp.status_code == 200

    data = resp.json()
    assert data["success"] is True
    assert data["status_code"] == 200
    assert data["attempts"] == 1
    mock_executor.execute.assert_awaited_once_with(template, 0)
    assert store.list_execution_logs() == []


def test_test_unsaved_template(client, store, template, mock_executor):
    mock_executor.execute.return_value = ExecutionResult(
        success=False, status_code=404, status_text="Not Found", attempts=1
    )

    resp = client.post("/templates/test", json={"name": "Draft", "url": "https://svc.test/x"})
    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["status_code"] == 404

    [sent, retries] = mock_executor.execute.await_args.args
    assert sent.url == "https://svc.test/x"
    assert retries == 0
    assert [t.id for t in store.all_templates()] == [template.id]


def test_test_unknown_template_404(client, mock_executor):
    assert client.post("/templates/missing/test").status_code == 404
    mock_executor.execute.assert_not_awaited()
