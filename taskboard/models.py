"""Documents stored in and returned by the API."""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from taskboard.errors import ApiError, ErrorKind, FieldError

_ID_ALPHABET = "_-0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
_ID_LENGTH = 21

_AUTH_TEXT_FIELDS = ("email", "first_name", "last_name", "password_hash")
_AUTH_FLAG_FIELDS = ("active", "reset_password")


def new_id() -> str:
    """Return a random 21 character URL-safe identifier."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


def _mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    return data


def _field(data: Mapping[str, Any], key: str, *types: type) -> Any:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if isinstance(value, bool) and bool not in types:
        raise ValueError(f"invalid type for field `{key}`")
    if not isinstance(value, types):
        raise ValueError(f"invalid type for field `{key}`")
    return value


def _optional_id(data: Mapping[str, Any]) -> str | None:
    value = data.get("_id")
    if value is not None and not isinstance(value, str):
        raise ValueError("invalid type for field `_id`")
    return value


def _string_list(data: Mapping[str, Any], key: str) -> list[str]:
    values = _field(data, key, list)
    if not all(isinstance(value, str) for value in values):
        raise ValueError(f"invalid type for field `{key}`")
    return list(values)


def _utc_datetime(data: Mapping[str, Any], key: str) -> datetime:
    value = _field(data, key, datetime)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_milliseconds(moment: datetime) -> datetime:
    return moment.replace(microsecond=moment.microsecond // 1000 * 1000)


def _check_length(
    errors: list[FieldError],
    name: str,
    value: str,
    message: str,
    minimum: int | None = None,
    maximum: int | None = None,
) -> None:
    length = len(value)
    if (minimum is not None and length < minimum) or (
        maximum is not None and length > maximum
    ):
        errors.append(FieldError(name, json.dumps(value, ensure_ascii=False), message))


@dataclass
class Task:
    """A task with a title and a body."""

    title: str
    body: str
    id: str | None = None

    def validate(self) -> None:
        """Raise a validation ``ApiError`` if a field is too short."""
        errors: list[FieldError] = []
        _check_length(
            errors, "title", self.title,
            "Title must have minimum of 5 characters", minimum=5,
        )
        _check_length(
            errors, "body", self.body,
            "Body must have aleast 10 characters", minimum=10,
        )
        if errors:
            raise ApiError(ErrorKind.VALIDATION_ERROR, errors, "Task")

    @classmethod
    def from_dict(cls, data: Any) -> Task:
        data = _mapping(data)
        return cls(
            title=_field(data, "title", str),
            body=_field(data, "body", str),
            id=_optional_id(data),
        )

    def to_dict(self) -> dict[str, Any]:
        document: dict[str, Any] = {}
        if self.id is not None:
            document["_id"] = self.id
        document["title"] = self.title
        document["body"] = self.body
        return document


@dataclass
class TaskAggregate:
    """The number of tasks sharing one status."""

    status: str
    count: int

    @classmethod
    def from_dict(cls, data: Any) -> TaskAggregate:
        data = _mapping(data)
        return cls(status=_field(data, "status", str), count=_field(data, "count", int))


@dataclass
class User:
    """A user with a name, a location and a title."""

    name: str
    location: str
    title: str
    id: str | None = None

    def validate(self) -> None:
        """Raise a validation ``ApiError`` if name or location has a bad length."""
        errors: list[FieldError] = []
        _check_length(
            errors, "name", self.name,
            "Name must be have minimum of 3 characters", minimum=2,
        )
        _check_length(
            errors, "location", self.location,
            "Location character length between 2 and 15", minimum=2, maximum=15,
        )
        if errors:
            raise ApiError(ErrorKind.VALIDATION_ERROR, errors, "User")

    @classmethod
    def from_dict(cls, data: Any) -> User:
        data = _mapping(data)
        return cls(
            name=_field(data, "name", str),
            location=_field(data, "location", str),
            title=_field(data, "title", str),
            id=_optional_id(data),
        )

    def to_dict(self) -> dict[str, Any]:
        document: dict[str, Any] = {}
        if self.id is not None:
            document["_id"] = self.id
        document["name"] = self.name
        document["location"] = self.location
        document["title"] = self.title
        return document


@dataclass
class Auth:
    """A registered account with its password hash and roles."""

    id: str
    email: str
    first_name: str
    last_name: str
    password_hash: str
    roles: list[str] = field(default_factory=list)
    active: bool = True
    reset_password: bool = False
    created_ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_dict(cls, data: Any) -> Auth:
        data = _mapping(data)
        identifier = _field(data, "_id", str)
        texts = {name: _field(data, name, str) for name in _AUTH_TEXT_FIELDS}
        roles = _string_list(data, "roles")
        flags = {name: _field(data, name, bool) for name in _AUTH_FLAG_FIELDS}
        return cls(
            id=identifier,
            roles=roles,
            created_ts=_utc_datetime(data, "created_ts"),
            updated_ts=_utc_datetime(data, "updated_ts"),
            **texts,
            **flags,
        )

    def to_dict(self) -> dict[str, Any]:
        """Render as a database document; timestamps keep millisecond precision."""
        return {
            "_id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "password_hash": self.password_hash,
            "roles": list(self.roles),
            "active": self.active,
            "reset_password": self.reset_password,
            "created_ts": _to_milliseconds(self.created_ts),
            "updated_ts": _to_milliseconds(self.updated_ts),
        }


@dataclass
class Location:
    """Geolocation details of an IP address."""

    ip: str
    country: str
    country_iso: str
    region_name: str
    region_code: str
    zip_code: str
    city: str
    latitude: float
    longitude: float
    time_zone: str
    hostname: str

    @classmethod
    def from_dict(cls, data: Any) -> Location:
        data = _mapping(data)
        return cls(
            ip=_field(data, "ip", str),
            country=_field(data, "country", str),
            country_iso=_field(data, "country_iso", str),
            region_name=_field(data, "region_name", str),
            region_code=_field(data, "region_code", str),
            zip_code=_field(data, "zip_code", str),
            city=_field(data, "city", str),
            latitude=float(_field(data, "latitude", int, float)),
            longitude=float(_field(data, "longitude", int, float)),
            time_zone=_field(data, "time_zone", str),
            hostname=_field(data, "hostname", str),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip": self.ip,
            "country": self.country,
            "country_iso": self.country_iso,
            "region_name": self.region_name,
            "region_code": self.region_code,
            "zip_code": self.zip_code,
            "city": self.city,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "time_zone": self.time_zone,
            "hostname": self.hostname,
        }