"""
Shared fixtures for the wastage engine tests.
"""
import itertools
from datetime import date, timedelta

import pytest

from lifeline.schemas.inventory import (
    BloodRequest,
    BloodType,
    ComponentType,
    HospitalProfile,
    InventoryLot,
    LotStatus,
    RequestStatus,
    StockLevel,
)
from lifeline.schemas.wastage import WastageEngineConfig

TODAY = date(2025, 1, 15)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def config():
    return WastageEngineConfig()


@pytest.fixture
def make_lot():
    """Factory for canonical lots measured against TODAY."""
    counter = itertools.count(1)

    def _make(
        days=5,
        units=20,
        blood_type="O+",
        component="whole_blood",
        hospital_id="H001",
        status="available",
        lot_id=None,
    ):
        return InventoryLot(
            lot_id=lot_id or f"LOT{next(counter):03d}",
            hospital_id=hospital_id,
            blood_type=BloodType(blood_type),
            component_type=ComponentType(component),
            available_units=units,
            expiration_date=TODAY + timedelta(days=days),
            days_until_expiry=days,
            status=LotStatus(status),
        )

    return _make


@pytest.fixture
def make_record():
    """Factory for raw snapshot records, as a provider would return them."""
    counter = itertools.count(1)

    def _make(days=5, units=20, blood_type="O+", component="whole_blood", hospital_id="H001", **extra):
        record = {
            "lot_id": f"R{next(counter):03d}",
            "hospital_id": hospital_id,
            "blood_type": blood_type,
            "component_type": component,
            "available_units": units,
            "expiration_date": (TODAY + timedelta(days=days)).isoformat(),
            "status": "available",
        }
        record.update(extra)
        return record

    return _make


@pytest.fixture
def make_hospital():
    """
    Factory for destination hospitals.

    stock: {(blood_type, component): units}
    requests: list of (blood_type, units, days_ago) or
              (blood_type, units, days_ago, component, status)
    """
    counter = itertools.count(1)

    def _make(hospital_id, stock=None, requests=None, name=None):
        levels = [
            StockLevel(blood_type=BloodType(bt), component_type=ComponentType(ct), units=units)
            for (bt, ct), units in (stock or {}).items()
        ]
        parsed = []
        for entry in requests or []:
            blood_type, units, days_ago = entry[:3]
            component = entry[3] if len(entry) > 3 else "whole_blood"
            status = entry[4] if len(entry) > 4 else "pending"
            parsed.append(BloodRequest(
                request_id=f"{hospital_id}-REQ{next(counter):02d}",
                hospital_id=hospital_id,
                blood_type=BloodType(blood_type),
                component_type=ComponentType(component),
                units_requested=units,
                request_date=TODAY - timedelta(days=days_ago),
                status=RequestStatus(status),
            ))
        return HospitalProfile(
            hospital_id=hospital_id,
            name=name or f"Hospital {hospital_id}",
            stock=levels,
            requests=parsed,
        )

    return _make
