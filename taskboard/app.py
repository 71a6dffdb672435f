"""The HTTP application: routes, authentication guard, error rendering and startup."""

from __future__ import annotations

import argparse
import dataclasses
import functools
import json
import logging
import os
from typing import Any, Callable

import requests
from dotenv import load_dotenv
from flask import Blueprint, Flask, Response, g, jsonify, request
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from taskboard.errors import ApiError, ErrorKind, error_body, utc_timestamp
from taskboard.models import Task, User, new_id
from taskboard.pagination import Pagination
from taskboard.remote import AggregatorService, fetch_location
from taskboard.repositories import TaskRepository, UserRepository
from taskboard.services import TaskService, UserService

VERSION = "0.3.0"
MONGO_DATABASE = "taskboard"
TOKEN_DECODER = "TOKEN_DECODER"

ALLOWED_ORIGINS = frozenset({"http://127.0.0.1:8080", "http://localhost:8080"})
_ALLOWED_METHODS = "GET, POST, PUT, DELETE, PATCH"
_ALLOWED_HEADERS = "authorization, accept, content-type"
_CORS_MAX_AGE = "3600"

_DEFAULT_HOST = "127.0.0.1"
_DEFAULT_PORT = 8080

_log = logging.getLogger(__name__)


class _PayloadRejected(Exception):
    """A request body that could not be read as the expected JSON document."""

    def __init__(self, status: int, message: str, detail: str) -> None:
        super().__init__(detail)
        self.status = status
        self.message = message
        self.detail = detail


def connect(uri: str | None = None) -> MongoClient:
    """Create a MongoDB client from ``uri`` or the ``MONGO.URI`` environment variable."""
    if uri is None:
        uri = os.environ.get("MONGO.URI")
        if uri is None:
            _log.error("Error loading env info for MongoDB connection")
            uri = "Error loading env variables to connect to MongoDB"
    if not uri.startswith(("mongodb://", "mongodb+srv://")):
        raise RuntimeError("Error connecting to backend database: invalid connection string")
    try:
        return MongoClient(uri)
    except PyMongoError as error:
        raise RuntimeError(f"Error connecting to backend database: {error}") from error


def _read_payload(model: Any) -> Any:
    if not request.is_json:
        raise _PayloadRejected(415, "Unsupported media type", "Content type error")
    try:
        data = json.loads(request.get_data())
    except (json.JSONDecodeError, UnicodeDecodeError) as error:
        raise _PayloadRejected(
            400,
            "Bad request. Missing parameter and/or wrong payload.",
            f"Json deserialize error: {error}",
        ) from error
    try:
        return model.from_dict(data)
    except ValueError as error:
        raise _PayloadRejected(
            422, "Unprocessable payload", f"Json deserialize error: {error}"
        ) from error


def _read_pagination() -> Pagination:
    try:
        return Pagination.from_query(request.args)
    except ValueError as error:
        _log.warning("Bad pagination query: %s", error)
        raise ApiError(ErrorKind.BAD_REQUEST) from error


def _has_any_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    required = frozenset(f"ROLE_{role}" for role in roles)

    def decorate(view: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(view)
        def guarded(*args: Any, **kwargs: Any) -> Any:
            if not required & g.get("permissions", frozenset()):
                raise ApiError(ErrorKind.AUTHORIZATION_ERROR)
            return view(*args, **kwargs)

        return guarded

    return decorate


def _no_content() -> Response:
    return Response(status=204)


def _api_blueprint(app: Flask, users: UserService, tasks: TaskService, aggregator: Any) -> Blueprint:
    api = Blueprint("api", __name__, url_prefix="/api")

    @api.before_request
    def authenticate() -> Response | None:
        header = request.headers.get("Authorization")
        if header is None or not header.isascii():
            return Response(status=404)
        _log.debug("Validating bearer credentials")
        parts = header.split(maxsplit=1)
        scheme = parts[0] if parts else ""
        credentials = parts[1].strip() if len(parts) > 1 else ""
        if scheme.lower() != "bearer" or not credentials:
            raise ApiError(ErrorKind.AUTHENTICATION_ERROR)
        decoder = app.config.get(TOKEN_DECODER)
        permissions = decoder(credentials) if decoder is not None else None
        if permissions is None:
            raise ApiError(ErrorKind.AUTHENTICATION_ERROR)
        g.permissions = frozenset(permissions)
        return None

    @api.get("/ping")
    def ping_pong() -> Response:
        return Response("Hello World", mimetype="text/plain")

    @api.get("/hello")
    def hello_message() -> Response:
        return jsonify(
            {"id": new_id(), "message": "Hello world", "time_stamp": utc_timestamp()}
        )

    @api.post("/users")
    def create_user() -> Any:
        user = _read_payload(User)
        user.validate()
        return jsonify(users.create_user(user).to_dict()), 201

    @api.get("/users/<user_id>")
    def get_user(user_id: str) -> Any:
        return jsonify(users.get_user(user_id).to_dict())

    @api.put("/users/<user_id>")
    def update_user(user_id: str) -> Any:
        user = _read_payload(User)
        return jsonify(users.update_user(user_id, user).to_dict())

    @api.delete("/users/<user_id>")
    def delete_user(user_id: str) -> Response:
        users.delete_user(user_id)
        return _no_content()

    @api.get("/users")
    @_has_any_role("USER")
    def list_users() -> Any:
        return jsonify(users.list_users(_read_pagination()))

    @api.post("/tasks")
    def create_task() -> Any:
        task = _read_payload(Task)
        task.validate()
        return jsonify(tasks.create_task(task).to_dict()), 201

    @api.get("/tasks/<task_id>")
    def get_task(task_id: str) -> Any:
        return jsonify(tasks.get_task(task_id).to_dict())

    @api.put("/tasks/<task_id>")
    def update_task(task_id: str) -> Any:
        task = _read_payload(Task)
        return jsonify(tasks.update_task(task_id, task).to_dict())

    @api.delete("/tasks/<task_id>")
    def delete_task(task_id: str) -> Response:
        tasks.delete_task(task_id)
        return _no_content()

    @api.get("/tasks")
    @_has_any_role("USER")
    def list_tasks() -> Any:
        return jsonify(tasks.list_tasks(_read_pagination()))

    @api.get("/aggregate")
    def aggregate() -> Any:
        try:
            data = aggregator.fetch_data()
        except requests.RequestException as error:
            _log.error("Aggregation failed: %s", error)
            return jsonify("Failed to fetch aggregated data"), 500
        return jsonify(dataclasses.asdict(data))

    return api


def create_app(database: Any, aggregator: Any = None) -> Flask:
    """Build the application around ``database`` and an aggregator service.

    Requests under ``/api`` need an ``Authorization`` header and a bearer token
    accepted by the callable stored in ``app.config[TOKEN_DECODER]``, which maps
    a token to its permissions or to ``None`` when the token is invalid.
    """
    app = Flask(__name__)
    app.config.setdefault(TOKEN_DECODER, None)
    users = UserService(UserRepository(database))
    tasks = TaskService(TaskRepository(database))
    if aggregator is None:
        aggregator = AggregatorService()

    @app.before_request
    def preflight() -> Response | None:
        if (
            request.method == "OPTIONS"
            and request.headers.get("Origin") in ALLOWED_ORIGINS
            and "Access-Control-Request-Method" in request.headers
        ):
            response = Response(status=200)
            response.headers["Access-Control-Allow-Methods"] = _ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = _ALLOWED_HEADERS
            response.headers["Access-Control-Max-Age"] = _CORS_MAX_AGE
            return response
        return None

    @app.after_request
    def decorate_response(response: Response) -> Response:
        if request.headers.get("Origin") in ALLOWED_ORIGINS:
            response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["X-Version"] = VERSION
        return response

    @app.errorhandler(ApiError)
    def render_api_error(error: ApiError) -> Any:
        return jsonify(error.to_dict()), error.status_code()

    @app.errorhandler(_PayloadRejected)
    def render_payload_error(error: _PayloadRejected) -> Any:
        body = error_body(error.status, error.message, error.detail)
        return jsonify(body), error.status

    @app.get("/ping")
    def ping() -> Response:
        return Response("pong!", mimetype="text/plain")

    @app.get("/locations")
    def get_location() -> Any:
        return jsonify(fetch_location().to_dict())

    app.register_blueprint(_api_blueprint(app, users, tasks, aggregator))
    return app


def _server_port() -> int:
    try:
        port = int(os.environ.get("SERVER.PORT", str(_DEFAULT_PORT)))
    except ValueError:
        return _DEFAULT_PORT
    return port if 0 <= port <= 0xFFFF else _DEFAULT_PORT


def main(argv: list[str] | None = None) -> None:
    """Start the HTTP server configured from the environment and ``.env``."""
    parser = argparse.ArgumentParser(
        prog="taskboard",
        description="Serve the users and tasks API. Configured by MONGO.URI, "
        "SERVER.HOST and SERVER.PORT.",
    )
    parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s"
    )
    _log.info("Initializing application...")
    load_dotenv()

    client = connect()
    app = create_app(client[MONGO_DATABASE])

    host = os.environ.get("SERVER.HOST", _DEFAULT_HOST)
    port = _server_port()
    _log.info("Starting server on %s:%s", host, port)
    app.run(host=host, port=port)