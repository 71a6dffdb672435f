"""Calls to the outside HTTP services the API relies on."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from taskboard.errors import ApiError, ErrorKind
from taskboard.models import Location

LOCATION_URL = "https://ifconfig.co/json"
DATA1_URL = "http://api.example.com/data1"
DATA2_URL = "http://api.example.com/data2"

_TIMEOUT = 30

_log = logging.getLogger(__name__)


def fetch_location(session: Any = None) -> Location:
    """Look up the geolocation of the server's public IP address.

    Any transport or decoding failure is raised as an internal server error.
    """
    http = session if session is not None else requests
    try:
        response = http.get(LOCATION_URL, timeout=_TIMEOUT)
        return Location.from_dict(response.json())
    except (requests.RequestException, ValueError) as error:
        _log.error("Error calling REST API: %s", error)
        raise ApiError(ErrorKind.INTERNAL_SERVER_ERROR) from error


@dataclass(frozen=True)
class AggregatedData:
    """The raw text bodies of the two aggregated sources."""

    data1: str
    data2: str


class AggregatorService:
    """Fetches and combines data from two remote endpoints."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session if session is not None else requests.Session()

    def fetch_data(self) -> AggregatedData:
        """Fetch both sources in turn; transport errors propagate as ``requests`` errors."""
        first = self.session.get(DATA1_URL, timeout=_TIMEOUT)
        second = self.session.get(DATA2_URL, timeout=_TIMEOUT)
        return AggregatedData(data1=first.text, data2=second.text)