from http import HTTPStatus
from types import SimpleNamespace

import pytest
import requests
import responses

from taskboard.app import TOKEN_DECODER, VERSION, connect, create_app
from taskboard.remote import LOCATION_URL, AggregatedData

AUTH = {"Authorization": "Bearer token"}
NO_ROLES = {"Authorization": "Bearer secret"}

SAMPLE_USER = {"name": "Ada", "location": "London", "title": "Engineer"}
SAMPLE_TASK = {"title": "Write docs", "body": "Describe every endpoint"}

SAMPLE_LOCATION = {
    "ip": "192.0.2.10",
    "country": "Exampleland",
    "country_iso": "EX",
    "region_name": "North Region",
    "region_code": "NR",
    "zip_code": "00000",
    "city": "Sampleton",
    "latitude": 12.5,
    "longitude": -45.25,
    "time_zone": "Etc/UTC",
    "hostname": "host.example.com",
}


class FakeCollection:
    def __init__(self):
        self.documents = []

    def _matches(self, document, query):
        return all(document.get(key) == value for key, value in query.items())

    def insert_one(self, document):
        self.documents.append(dict(document))
        return SimpleNamespace(inserted_id=document["_id"])

    def find_one(self, query):
        for document in self.documents:
            if self._matches(document, query):
                return dict(document)
        return None

    def update_one(self, query, changes):
        for document in self.documents:
            if self._matches(document, query):
                document.update(changes["$set"])
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)

    def delete_one(self, query):
        for document in self.documents:
            if self._matches(document, query):
                self.documents.remove(document)
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    def find(self, query, skip=0, limit=0, sort=None):
        found = [dict(d) for d in self.documents if self._matches(d, query)]
        for key, direction in reversed(sort or []):
            found.sort(key=lambda d: d[key], reverse=direction < 0)
        found = found[skip:]
        return found[: abs(limit)] if limit else found

    def count_documents(self, query):
        return sum(1 for d in self.documents if self._matches(d, query))


class FakeDatabase(dict):
    def __missing__(self, name):
        collection = self[name] = FakeCollection()
        return collection


class FakeAggregator:
    def __init__(self, error=None):
        self.error = error

    def fetch_data(self):
        if self.error is not None:
            raise self.error
        return AggregatedData(data1="alpha", data2="beta")


def _decode(token):
    return {"token": ["ROLE_USER"], "secret": []}.get(token)


def _make_app(aggregator=None):
    application = create_app(FakeDatabase(), aggregator or FakeAggregator())
    application.config[TOKEN_DECODER] = _decode
    return application


@pytest.fixture
def client():
    return _make_app().test_client()


def test_ping_is_open_and_versioned(client):
    response = client.get("/ping")
    assert response.status_code == HTTPStatus.OK
    assert response.get_data(as_text=True) == "pong!"
    assert response.headers["X-Version"] == VERSION


def test_api_without_authorization_header_is_not_found(client):
    response = client.get("/api/ping")
    assert response.status_code == HTTPStatus.NOT_FOUND


def test_api_ping_with_token(client):
    response = client.get("/api/ping", headers=AUTH)
    assert response.status_code == HTTPStatus.OK
    assert response.get_data(as_text=True) == "Hello World"


def test_non_bearer_scheme_is_unauthorized(client):
    response = client.get("/api/ping", headers={"Authorization": "Basic token"})
    assert response.status_code == HTTPStatus.UNAUTHORIZED
    assert response.get_json()["message"] == "Authentication error."


def test_rejected_token_is_unauthorized(client):
    response = client.get("/api/ping", headers={"Authorization": "Bearer placeholder"})
    assert response.status_code == HTTPStatus.UNAUTHORIZED
    assert response.get_json()["status"] == HTTPStatus.UNAUTHORIZED


def test_without_decoder_tokens_are_rejected():
    application = create_app(FakeDatabase(), FakeAggregator())
    response = application.test_client().get("/api/ping", headers=AUTH)
    assert response.status_code == HTTPStatus.UNAUTHORIZED


def test_hello_message(client):
    body = client.get("/api/hello", headers=AUTH).get_json()
    assert body["message"] == "Hello world"
    assert len(body["id"]) == 21
    assert body["time_stamp"].endswith("Z")


def test_user_create_then_get(client):
    created = client.post("/api/users", json=SAMPLE_USER, headers=AUTH)
    assert created.status_code == HTTPStatus.CREATED
    body = created.get_json()
    assert {k: body[k] for k in SAMPLE_USER} == SAMPLE_USER
    fetched = client.get(f"/api/users/{body['_id']}", headers=AUTH)
    assert fetched.status_code == HTTPStatus.OK
    assert fetched.get_json() == body


def test_user_create_ignores_client_id(client):
    body = client.post("/api/users", json={**SAMPLE_USER, "_id": "chosen"}, headers=AUTH).get_json()
    assert body["_id"] != "chosen"
    assert body["name"] == SAMPLE_USER["name"]


def test_user_validation_error(client):
    response = client.post("/api/users", json={**SAMPLE_USER, "name": "A"}, headers=AUTH)
    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    body = response.get_json()
    assert body["message"] == "Validation error on field"
    assert [(e["object"], e["field"]) for e in body["sub_errors"]] == [("User", "name")]


def test_wrong_content_type_is_unsupported(client):
    response = client.post("/api/users", data="name", content_type="text/plain", headers=AUTH)
    assert response.status_code == HTTPStatus.UNSUPPORTED_MEDIA_TYPE
    assert response.get_json()["message"] == "Unsupported media type"


def test_malformed_json_is_bad_request(client):
    response = client.post("/api/users", data="{", content_type="application/json", headers=AUTH)
    assert response.status_code == HTTPStatus.BAD_REQUEST
    body = response.get_json()
    assert body["message"] == "Bad request. Missing parameter and/or wrong payload."
    assert body["sub_errors"] == []


def test_missing_field_is_unprocessable(client):
    response = client.post("/api/users", json={"name": "Ada"}, headers=AUTH)
    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.get_json()["message"] == "Unprocessable payload"


def test_unknown_user_is_not_found(client):
    response = client.get("/api/users/missing", headers=AUTH)
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.get_json()["message"] == "User not found for the given ID"


def test_user_update_and_delete(client):
    user_id = client.post("/api/users", json=SAMPLE_USER, headers=AUTH).get_json()["_id"]
    changed = {**SAMPLE_USER, "title": "Manager"}
    updated = client.put(f"/api/users/{user_id}", json=changed, headers=AUTH)
    assert updated.status_code == HTTPStatus.OK
    assert updated.get_json() == {**changed, "_id": user_id}

    deleted = client.delete(f"/api/users/{user_id}", headers=AUTH)
    assert deleted.status_code == HTTPStatus.NO_CONTENT
    assert deleted.get_data() == b""
    assert client.get(f"/api/users/{user_id}", headers=AUTH).status_code == HTTPStatus.NOT_FOUND


def test_update_unknown_user_is_not_found(client):
    response = client.put("/api/users/missing", json=SAMPLE_USER, headers=AUTH)
    assert response.status_code == HTTPStatus.NOT_FOUND


def test_list_users_sorted_with_meta(client):
    names = ["Zed", "Bob", "Mia"]
    for name in names:
        client.post("/api/users", json={**SAMPLE_USER, "name": name}, headers=AUTH)
    response = client.get("/api/users?offset=0&limit=2", headers=AUTH)
    assert response.status_code == HTTPStatus.OK
    body = response.get_json()
    assert [u["name"] for u in body["data"]] == sorted(names)[:2]
    assert body["meta"]["total_results"] == len(names)
    assert body["meta"]["limit"] == 2
    assert body["_link"]["previous"] is None


def test_list_users_requires_role(client):
    response = client.get("/api/users", headers=NO_ROLES)
    assert response.status_code == HTTPStatus.FORBIDDEN
    assert response.get_json()["message"] == "Authorization error."


def test_list_users_bad_query_is_bad_request(client):
    response = client.get("/api/users?offset=abc", headers=AUTH)
    assert response.status_code == HTTPStatus.BAD_REQUEST


def test_task_lifecycle(client):
    created = client.post("/api/tasks", json=SAMPLE_TASK, headers=AUTH)
    assert created.status_code == HTTPStatus.CREATED
    task_id = created.get_json()["_id"]
    listing = client.get("/api/tasks", headers=AUTH).get_json()
    assert listing["data"] == [{"id": task_id, **SAMPLE_TASK}]
    assert client.delete(f"/api/tasks/{task_id}", headers=AUTH).status_code == HTTPStatus.NO_CONTENT
    missing = client.delete(f"/api/tasks/{task_id}", headers=AUTH)
    assert missing.get_json()["message"] == "Task not found for the given ID"


def test_task_validation_reports_both_fields(client):
    response = client.post("/api/tasks", json={"title": "x", "body": "y"}, headers=AUTH)
    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    fields = sorted(e["field"] for e in response.get_json()["sub_errors"])
    assert fields == ["body", "title"]


def test_aggregate_returns_both_sources(client):
    response = client.get("/api/aggregate", headers=AUTH)
    assert response.get_json() == {"data1": "alpha", "data2": "beta"}


def test_aggregate_failure_is_server_error():
    application = _make_app(FakeAggregator(error=requests.ConnectionError("down")))
    response = application.test_client().get("/api/aggregate", headers=AUTH)
    assert response.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.get_json() == "Failed to fetch aggregated data"


def test_locations_endpoint(client):
    with responses.RequestsMock() as mock:
        mock.add(responses.GET, LOCATION_URL, json=SAMPLE_LOCATION)
        response = client.get("/locations")
    assert response.status_code == HTTPStatus.OK
    assert response.get_json() == SAMPLE_LOCATION


def test_locations_failure_is_server_error(client):
    with responses.RequestsMock() as mock:
        mock.add(responses.GET, LOCATION_URL, body="not json")
        response = client.get("/locations")
    assert response.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.get_json()["message"] == "Internal server error. Try again after some time."


def test_cors_allowed_origin_gets_wildcard(client):
    response = client.get("/ping", headers={"Origin": "http://localhost:8080"})
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_cors_other_origin_gets_nothing(client):
    response = client.get("/ping", headers={"Origin": "http://other.example.com"})
    assert "Access-Control-Allow-Origin" not in response.headers


def test_cors_preflight(client):
    response = client.options(
        "/api/users",
        headers={"Origin": "http://127.0.0.1:8080", "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == HTTPStatus.OK
    assert response.headers["Access-Control-Max-Age"] == "3600"
    assert "POST" in response.headers["Access-Control-Allow-Methods"]


def test_connect_rejects_invalid_uri():
    with pytest.raises(RuntimeError):
        connect("not a uri")


def test_connect_without_environment_fails(monkeypatch):
    monkeypatch.delenv("MONGO.URI", raising=False)
    with pytest.raises(RuntimeError):
        connect()