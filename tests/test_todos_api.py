import asyncio
import json
from dataclasses import replace
from datetime import datetime
from unittest import mock

from fastapi.testclient import TestClient
from ulid import ULID

from todo_backend import main
from todo_backend.generate_openapi import generate_openapi
from todo_backend.main import create_app


def create_todo_payload(title="Test Task", description="Do something"):
    return {"title": title, "description": description}


def parse_timestamp(value: str) -> datetime:
    # fromisoformat only accepts a trailing "Z" from Python 3.11 on
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def assert_todo_shape(todo: dict):
    for key in ["id", "title", "description", "status", "createdAt", "updatedAt"]:
        assert key in todo
    assert len(todo["id"]) == 26
    assert set(todo["status"]) == {"code", "name"}
    parse_timestamp(todo["createdAt"])
    parse_timestamp(todo["updatedAt"])


def create_todo(client, headers, **kwargs):
    res = client.post("/v1/todo", json=create_todo_payload(**kwargs), headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["result"] is True
    return body["data"]["todoView"]


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/v1/hc")
        assert res.status_code == 204
        assert res.text == ""

    def test_database_health_check(self, client):
        res = client.get("/v1/hc/postgres")
        assert res.status_code == 204

    def test_unknown_api_version(self, client):
        res = client.get("/v2/hc")
        assert res.status_code == 400
        assert res.json() == {"result": False, "message": "Unknown api version(v2).", "data": None}

    def test_unknown_uri(self, client):
        res = client.get("/nowhere")
        assert res.status_code == 200
        assert res.json() == {"result": False, "message": "error(abnormal uri).", "data": None}

    def test_swagger_document(self, client):
        res = client.get("/swagger.json")
        assert res.status_code == 200
        schema = res.json()
        assert "/{v}/todo" in schema["paths"]
        assert "/{v}/todo/{id}" in schema["paths"]
        assert "Authorization" in schema["components"]["securitySchemes"]

        ui = client.get("/swagger-ui")
        assert ui.status_code == 200
        assert "swagger" in ui.text.lower()


class TestAuthRequired:
    def test_missing_token(self, client):
        res = client.get("/v1/todo")
        assert res.status_code == 400
        body = res.json()
        assert body["result"] is False
        assert body["message"] == "Missing or expired jwt(auth_header not found)."
        assert body["data"] is None

    def test_garbage_token(self, client):
        res = client.get("/v1/todo", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 400
        assert res.json()["message"].startswith("Missing or expired jwt(")

    def test_mutations_rejected_without_token(self, client):
        tid = str(ULID())
        assert client.post("/v1/todo", json=create_todo_payload()).status_code == 400
        assert client.patch(f"/v1/todo/{tid}", json={"title": "x"}).status_code == 400
        assert client.put(
            f"/v1/todo/{tid}", json={"title": "x", "description": "y", "statusCode": "new"}
        ).status_code == 400
        assert client.delete(f"/v1/todo/{tid}").status_code == 400


class TestTodosCRUD:
    def test_create_todo_starts_new(self, client, auth_headers):
        todo = create_todo(client, auth_headers, title="Buy milk", description="2 bottles")
        assert_todo_shape(todo)
        assert todo["title"] == "Buy milk"
        assert todo["description"] == "2 bottles"
        assert todo["status"] == {"code": "new", "name": "New"}

    def test_get_todo_and_not_found(self, client, auth_headers):
        todo = create_todo(client, auth_headers, title="Read book")

        res_get = client.get(f"/v1/todo/{todo['id']}", headers=auth_headers)
        assert res_get.status_code == 200
        fetched = res_get.json()["data"]["todoView"]
        assert fetched == todo

        res_nf = client.get(f"/v1/todo/{ULID()}", headers=auth_headers)
        assert res_nf.status_code == 200
        assert res_nf.json() == {"result": False, "message": "error(data not found).", "data": None}

    def test_get_todo_invalid_id(self, client, auth_headers):
        res = client.get("/v1/todo/not-a-ulid", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["message"] == "error(`not-a-ulid` is not a valid id)."

    def test_find_todo_empty(self, client, auth_headers):
        res = client.get("/v1/todo", headers=auth_headers)
        assert res.status_code == 200
        body = res.json()
        assert body["result"] is True
        assert body["message"] == "todo not found."
        assert body["data"] == {"todoView": {"todos": [], "total": 0}}

    def test_find_todo_ordered_and_filtered(self, client, auth_headers):
        first = create_todo(client, auth_headers, title="First")
        second = create_todo(client, auth_headers, title="Second")
        client.patch(f"/v1/todo/{second['id']}", json={"statusCode": "done"}, headers=auth_headers)

        res_all = client.get("/v1/todo", headers=auth_headers)
        listing = res_all.json()["data"]["todoView"]
        assert listing["total"] == 2
        assert [t["id"] for t in listing["todos"]] == [first["id"], second["id"]]

        res_done = client.get("/v1/todo?status=done", headers=auth_headers)
        done = res_done.json()["data"]["todoView"]
        assert done["total"] == 1
        assert done["todos"][0]["id"] == second["id"]
        assert done["todos"][0]["status"]["code"] == "done"

        res_waiting = client.get("/v1/todo?status=waiting", headers=auth_headers)
        assert res_waiting.json()["message"] == "todo not found."

    def test_find_todo_unknown_status(self, client, auth_headers):
        res = client.get("/v1/todo?status=someday", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["message"] == "error(`statusCode` is invalid.)."

    def test_patch_partial_update(self, client, auth_headers):
        todo = create_todo(client, auth_headers, title="Partial", description="X")

        res_patch = client.patch(f"/v1/todo/{todo['id']}", json={"title": "Partial Updated"}, headers=auth_headers)
        assert res_patch.status_code == 200
        patched = res_patch.json()["data"]["todoView"]
        assert patched["id"] == todo["id"]
        assert patched["title"] == "Partial Updated"
        # description and status should remain unchanged
        assert patched["description"] == "X"
        assert patched["status"]["code"] == "new"
        assert patched["createdAt"] == todo["createdAt"]
        assert parse_timestamp(patched["updatedAt"]) >= parse_timestamp(todo["updatedAt"])

        res_status = client.patch(f"/v1/todo/{todo['id']}", json={"statusCode": "working"}, headers=auth_headers)
        moved = res_status.json()["data"]["todoView"]
        assert moved["title"] == "Partial Updated"
        assert moved["status"] == {"code": "working", "name": "Working"}

    def test_patch_not_found_and_bad_status(self, client, auth_headers):
        res_nf = client.patch(f"/v1/todo/{ULID()}", json={"title": "Nope"}, headers=auth_headers)
        assert res_nf.json()["message"] == "error(data not found)."

        todo = create_todo(client, auth_headers)
        res_bad = client.patch(f"/v1/todo/{todo['id']}", json={"statusCode": "someday"}, headers=auth_headers)
        assert res_bad.json()["message"] == "error(`statusCode` is invalid.)."

        # failed update leaves the row untouched
        fetched = client.get(f"/v1/todo/{todo['id']}", headers=auth_headers).json()["data"]["todoView"]
        assert fetched == todo

    def test_put_replace_todo(self, client, auth_headers):
        todo = create_todo(client, auth_headers, title="Initial", description="A")

        new_payload = {"title": "Replaced", "description": "B", "statusCode": "waiting"}
        res_put = client.put(f"/v1/todo/{todo['id']}", json=new_payload, headers=auth_headers)
        assert res_put.status_code == 200
        updated = res_put.json()["data"]["todoView"]
        assert updated["id"] == todo["id"]
        assert updated["title"] == "Replaced"
        assert updated["description"] == "B"
        assert updated["status"]["code"] == "waiting"

    def test_put_creates_when_absent(self, client, auth_headers):
        tid = str(ULID())
        payload = {"title": "Fresh", "description": "from put", "statusCode": "done"}
        res_put = client.put(f"/v1/todo/{tid}", json=payload, headers=auth_headers)
        assert res_put.json()["data"]["todoView"]["id"] == tid

        fetched = client.get(f"/v1/todo/{tid}", headers=auth_headers).json()["data"]["todoView"]
        assert fetched["title"] == "Fresh"
        assert fetched["status"]["code"] == "done"

    def test_delete_todo(self, client, auth_headers):
        todo = create_todo(client, auth_headers, title="ToDelete")

        res_del = client.delete(f"/v1/todo/{todo['id']}", headers=auth_headers)
        assert res_del.status_code == 200
        assert res_del.json()["data"]["todoView"] == todo

        res_get = client.get(f"/v1/todo/{todo['id']}", headers=auth_headers)
        assert res_get.json()["message"] == "error(data not found)."
        # Deleting again reports the row as missing
        res_del_again = client.delete(f"/v1/todo/{todo['id']}", headers=auth_headers)
        assert res_del_again.json()["message"] == "error(data not found)."


class TestValidationErrors:
    def test_create_title_empty(self, client, auth_headers):
        res = client.post("/v1/todo", json={"title": "  ", "description": "x"}, headers=auth_headers)
        assert res.status_code == 400
        body = res.json()
        assert body["result"] is False
        assert body["message"] == "`title` is empty."
        assert body["data"] is None

    def test_create_missing_field(self, client, auth_headers):
        res = client.post("/v1/todo", json={"title": "x"}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "`description` is null."

    def test_messages_are_joined(self, client, auth_headers):
        res = client.post("/v1/todo", json={}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "`title` is null. or `description` is null."

    def test_patch_requires_a_field(self, client, auth_headers):
        todo = create_todo(client, auth_headers)
        res = client.patch(f"/v1/todo/{todo['id']}", json={}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "`title`, `description` or `statusCode` is required."

    def test_put_requires_status(self, client, auth_headers):
        res = client.put(f"/v1/todo/{ULID()}", json={"title": "x", "description": "y"}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "`statusCode` is null."

    def test_malformed_json(self, client, auth_headers):
        headers = {**auth_headers, "Content-Type": "application/json"}
        res = client.post("/v1/todo", content="{not json", headers=headers)
        assert res.status_code == 400
        assert res.json()["message"].startswith("Failed to parse the request body as JSON")


class TestRequestTimeout:
    def test_slow_request_renders_time_out(self, settings):
        app = create_app(replace(settings, request_timeout_seconds=0.05))

        @app.get("/v1/slow")
        async def slow():
            await asyncio.sleep(1)
            return {"result": True, "message": "success", "data": None}

        res = TestClient(app).get("/v1/slow")
        assert res.status_code == 200
        assert res.json() == {"result": False, "message": "error(time out.).", "data": None}

    def test_fast_request_is_untouched(self, settings):
        client = TestClient(create_app(replace(settings, request_timeout_seconds=5)))
        assert client.get("/v1/hc").status_code == 204


class TestEntrypoints:
    def test_run_serves_module_app(self):
        with mock.patch("uvicorn.run") as uvicorn_run:
            main.run()
        served = uvicorn_run.call_args.args[0]
        assert served is main.app
        assert uvicorn_run.call_args.kwargs["port"] == main.app.state.modules.settings.port

    def test_generate_openapi_writes_document(self, tmp_path):
        out = generate_openapi(str(tmp_path / "interfaces" / "openapi.json"))
        with open(out, encoding="utf-8") as f:
            schema = json.load(f)
        assert "/{v}/todo/{id}" in schema["paths"]
        assert {t["name"] for t in schema["tags"]} >= {"health", "user", "todo"}
