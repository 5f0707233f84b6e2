"""
Tests for the blood bank REST client (HTTP mocked).
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import requests

from lifeline.schemas.inventory import BloodType, ComponentType
from lifeline.services.blood_bank_api import BloodBankAPIClient
from lifeline.services.provider import CENTRAL_BANK, SnapshotFetchError

BASE_URL = "https://bank.example.org"


def _response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    return response


def fake_session(routes):
    """Session whose GET answers from {(path, hospitalId): payload}."""
    session = MagicMock()

    def _get(url, params=None, headers=None, timeout=None):
        path = url[len(BASE_URL):]
        key = (path, (params or {}).get("hospitalId"))
        if key not in routes:
            return _response({"error": "not found"}, status_code=404)
        return _response(routes[key])

    session.get.side_effect = _get
    return session


@pytest.fixture
def routes(make_record, today):
    return {
        ("/api/admin/inventory", None): [
            make_record(days=2, units=20, hospital_id=None),
            make_record(days=4, units=6, component="platelets", hospital_id=None),
        ],
        ("/api/admin/inventory", "H1"): [
            {"id": "L9", "hospitalId": "H1", "bloodType": "O-", "componentType": "whole_blood",
             "availableUnits": 14, "expirationDate": (today + timedelta(days=3)).isoformat() + "T05:00:00.000Z",
             "status": "available"},
        ],
        ("/api/admin/inventory", "H2"): [],
        ("/api/admin/hospitals", None): [
            {"id": "H1", "name": "North", "requestedBlood": [
                {"id": "A1", "bloodType": "O+", "unitsRequested": 10, "remainingBalance": 4,
                 "requestDate": today.isoformat(), "status": "partially_fulfilled"},
            ]},
            {"id": "H2", "name": "South", "requestedBlood": []},
        ],
        ("/api/admin/requests", None): [
            {"id": "P1", "hospitalId": "H2", "bloodType": "O+", "unitsRequested": 8,
             "requestDate": today.isoformat(), "status": "pending"},
            {"id": "P2", "hospitalId": "H2", "bloodType": "A+", "unitsRequested": 3,
             "requestDate": today.isoformat(), "status": "fulfilled"},
        ],
    }


@pytest.fixture
def client(routes):
    return BloodBankAPIClient(BASE_URL, token="secret", session=fake_session(routes))


class TestClientSetup:
    """Test configuration from parameters and environment."""

    def test_missing_url(self, monkeypatch):
        monkeypatch.delenv("LIFELINE_API_URL", raising=False)

        with pytest.raises(ValueError, match="LIFELINE_API_URL"):
            BloodBankAPIClient(session=MagicMock())

    def test_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("LIFELINE_API_URL", BASE_URL + "/")
        monkeypatch.setenv("LIFELINE_API_TOKEN", "env-token")

        client = BloodBankAPIClient(session=MagicMock())

        assert client.base_url == BASE_URL
        assert client.token == "env-token"

    def test_bearer_header(self, client):
        client.fetch_requests()

        _, kwargs = client.session.get.call_args
        assert kwargs["headers"] == {"Authorization": "Bearer secret"}
        assert kwargs["timeout"] == client.timeout


class TestFetchInventory:
    """Test inventory snapshot scopes."""

    def test_central_bank(self, client):
        frame = client.fetch_inventory_snapshot(hospital_id=CENTRAL_BANK)

        assert len(frame) == 2

    def test_one_hospital(self, client):
        frame = client.fetch_inventory_snapshot(hospital_id="H1")

        assert list(frame["id"]) == ["L9"]

    def test_whole_network(self, client):
        frame = client.fetch_inventory_snapshot()

        assert len(frame) == 3

    def test_component_filter(self, client):
        frame = client.fetch_inventory_snapshot(hospital_id=CENTRAL_BANK, component_type=ComponentType.PLATELETS)

        assert list(frame["component_type"]) == ["platelets"]


class TestErrors:
    """Test fetch failures surface as SnapshotFetchError."""

    def test_http_error(self, client):
        with pytest.raises(SnapshotFetchError, match="/api/admin/inventory"):
            client.fetch_inventory_snapshot(hospital_id="H404")

    def test_connection_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        client = BloodBankAPIClient(BASE_URL, token="t", session=session)

        with pytest.raises(SnapshotFetchError, match="refused"):
            client.fetch_hospitals()

    def test_invalid_json(self):
        response = _response(None)
        response.json.side_effect = ValueError("Expecting value")
        session = MagicMock()
        session.get.return_value = response
        client = BloodBankAPIClient(BASE_URL, token="t", session=session)

        with pytest.raises(SnapshotFetchError, match="invalid JSON"):
            client.fetch_requests()

    def test_non_list_payload(self):
        session = MagicMock()
        session.get.return_value = _response({"items": []})
        client = BloodBankAPIClient(BASE_URL, token="t", session=session)

        with pytest.raises(SnapshotFetchError, match="expected a list"):
            client.fetch_hospitals()


class TestHospitalDirectory:
    """Test hospital profiles assembled from the API."""

    def test_directory(self, client, today):
        h1, h2 = client.fetch_hospital_directory(today=today)

        assert h1.name == "North"
        assert h1.units_on_hand(BloodType.O_NEG, ComponentType.WHOLE_BLOOD) == 14
        assert [(r.request_id, r.units_requested) for r in h1.requests] == [("A1", 4)]
        assert [r.request_id for r in h2.requests] == ["P1"]

    def test_lot_expiring_today_is_not_stock(self, routes, today):
        """A UTC timestamp falling on the reference day has already expired."""
        routes[("/api/admin/inventory", "H1")][0]["expirationDate"] = today.isoformat() + "T05:00:00.000Z"
        client = BloodBankAPIClient(BASE_URL, token="secret", session=fake_session(routes))

        h1, _ = client.fetch_hospital_directory(today=today)

        assert h1.units_on_hand(BloodType.O_NEG, ComponentType.WHOLE_BLOOD) == 0

    def test_timezone_from_environment(self, monkeypatch, routes, today):
        monkeypatch.setenv("LIFELINE_TIMEZONE", "America/New_York")
        # 02:00 UTC tomorrow is still today in New York
        tomorrow = today + timedelta(days=1)
        routes[("/api/admin/inventory", "H1")][0]["expirationDate"] = tomorrow.isoformat() + "T02:00:00Z"
        client = BloodBankAPIClient(BASE_URL, token="secret", session=fake_session(routes))

        h1, _ = client.fetch_hospital_directory(today=today)

        assert client.timezone == "America/New_York"
        assert h1.units_on_hand(BloodType.O_NEG, ComponentType.WHOLE_BLOOD) == 0
