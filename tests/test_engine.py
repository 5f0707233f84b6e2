"""
End-to-end tests for the wastage engine pipeline.
"""
import json
import random
from collections import defaultdict
from datetime import timedelta

import pytest

from lifeline.engine import WastageEngine
from lifeline.schemas.inventory import BloodType, ComponentType, DiagnosticReason
from lifeline.schemas.wastage import LotFilter, RiskTier, WastageEngineConfig, WastageReport
from lifeline.services.snapshot import normalize_snapshot


@pytest.fixture
def engine(config):
    return WastageEngine(config)


def random_network(make_record, make_hospital, seed=7, num_lots=80):
    """A seeded snapshot spread over the central bank and four hospitals."""
    rng = random.Random(seed)
    hospital_ids = ["H001", "H002", "H003", "H004"]
    blood_types = [bt.value for bt in BloodType]
    components = [ct.value for ct in ComponentType]

    records = [
        make_record(
            days=rng.randint(-2, 40),
            units=rng.randint(0, 45),
            blood_type=rng.choice(blood_types),
            component=rng.choice(components),
            hospital_id=rng.choice(hospital_ids + [None]),
        )
        for _ in range(num_lots)
    ]

    hospitals = []
    for hospital_id in hospital_ids:
        stock = {
            (rng.choice(blood_types), rng.choice(components)): rng.randint(0, 40)
            for _ in range(4)
        }
        requests = [
            (rng.choice(blood_types), rng.randint(1, 20), rng.randint(0, 10), rng.choice(components))
            for _ in range(rng.randint(0, 3))
        ]
        hospitals.append(make_hospital(hospital_id, stock=stock, requests=requests))
    return records, hospitals


class TestScenarios:
    """Test reference scenarios end to end."""

    def test_single_lot_near_expiry(self, engine, make_record, today):
        report = engine.analyze([make_record(days=3, units=40, blood_type="O-")], today=today)

        assessment = report.risk_assessments[0]
        assert assessment.risk_score >= 70
        assert assessment.risk_tier == RiskTier.CRITICAL
        assert 0 < report.forecast.predicted_wastage(7) <= 40

    def test_no_at_risk_inventory(self, engine, make_record, make_hospital, today):
        records = [make_record(days=d, units=20) for d in (31, 45, 60)]

        report = engine.analyze(records, hospitals=[make_hospital("H002")], today=today)

        assert report.summary.total_at_risk == 0
        assert report.recommendations.transfer_recommendations == []
        assert report.forecast.predicted_wastage(30) == 0
        assert report.at_risk_assessments() == []

    def test_recommendation_targeting(self, engine, make_record, make_hospital, today):
        records = [make_record(days=3, units=20, blood_type="AB-", hospital_id="H1")]
        hospitals = [
            make_hospital("H2", stock={("AB-", "whole_blood"): 0}),
            make_hospital("H3", stock={("AB-", "whole_blood"): 50}),
        ]

        report = engine.analyze(records, hospitals=hospitals, today=today)

        assert report.recommendations.transfer_recommendations[0].target_hospital_id == "H2"

    def test_cluster_alert(self, engine, make_record, today):
        records = [make_record(days=d, units=20, blood_type="O+") for d in (1, 2, 3, 4, 5)]

        report = engine.analyze(records, today=today)

        critical = [a for a in report.recommendations.priority_actions if a.priority.value == "critical"]
        assert any("O+" in a.title or "O+" in a.description for a in critical)

    def test_high_risk_platelets_counted(self, engine, make_record, today):
        records = [
            make_record(days=10, units=20, component="platelets"),
            make_record(days=2, units=20, blood_type="A+"),
            make_record(days=40, units=20),
        ]

        report = engine.analyze(records, today=today)

        high_risk = [a for a in report.risk_assessments if a.risk_score >= 70]
        assert len(high_risk) == 2
        assert report.summary.high_risk_items == len(high_risk)
        assert all(a.at_risk for a in high_risk)


class TestPipeline:
    """Test pipeline behavior and scoping."""

    def test_deterministic(self, engine, make_record, make_hospital, today):
        records, hospitals = random_network(make_record, make_hospital)

        first = engine.analyze(records, hospitals=hospitals, today=today)
        second = WastageEngine().analyze(records, hospitals=hospitals, today=today)

        assert json.dumps(first.to_payload(), sort_keys=True) == json.dumps(second.to_payload(), sort_keys=True)

    def test_never_over_allocates(self, engine, make_record, make_hospital, today):
        for seed in range(5):
            records, hospitals = random_network(make_record, make_hospital, seed=seed)
            available = {r["lot_id"]: r["available_units"] for r in records}

            report = engine.analyze(records, hospitals=hospitals, today=today)

            proposed = defaultdict(int)
            for r in report.recommendations.transfer_recommendations:
                assert r.units <= available[r.lot_id]
                proposed[r.lot_id] += r.units
            assert all(units <= available[lot_id] for lot_id, units in proposed.items())

    def test_zero_unit_lots_not_aggregated(self, engine, make_record, today):
        records = [make_record(days=2, units=0, blood_type="B-"), make_record(days=2, units=5)]

        report = engine.analyze(records, today=today)

        assert [g.blood_type for g in report.blood_type_groups] == [BloodType.O_POS]
        assert report.stats.zero_unit_lots == 1

    def test_expired_and_reserved_excluded(self, engine, make_record, today):
        records = [
            make_record(days=-1, units=10),
            make_record(days=2, units=10, status="expired"),
            make_record(days=2, units=10, status="reserved"),
            make_record(days=2, units=10),
        ]

        report = engine.analyze(records, today=today)

        assert len(report.risk_assessments) == 1
        assert report.stats.expired_lots == 2
        assert report.stats.expired_units == 20
        assert any("expired" in note for note in report.notes)

    def test_empty_snapshot(self, engine, today):
        report = engine.analyze([], today=today)

        assert report.risk_assessments == []
        assert report.summary.total_at_risk == 0
        assert report.forecast.predicted_wastage(7) == 0

    def test_none_snapshot_raises(self, engine, today):
        with pytest.raises(ValueError, match="None"):
            engine.analyze(None, today=today)

    def test_configured_timezone_reads_expiration(self, make_record, today):
        record = make_record(expiration_date=(today + timedelta(days=1)).isoformat() + "T02:00:00Z")

        utc_report = WastageEngine().analyze([record], today=today)
        local_report = WastageEngine(WastageEngineConfig(timezone="America/New_York")).analyze([record], today=today)

        assert utc_report.stats.scorable_lots == 1
        assert local_report.stats.expired_lots == 1
        assert local_report.risk_assessments == []

    def test_diagnostics_reported(self, engine, make_record, today):
        records = [make_record(days=3), make_record(blood_type="XX"), make_record(expiration_date=None)]

        report = engine.analyze(records, today=today)

        assert [d.reason for d in report.diagnostics] == [
            DiagnosticReason.UNKNOWN_BLOOD_TYPE,
            DiagnosticReason.MISSING_EXPIRATION,
        ]
        assert len(report.risk_assessments) == 1
        assert any("2 records rejected" in note for note in report.notes)

    def test_accepts_normalized_snapshot(self, engine, make_record, today):
        snapshot = normalize_snapshot([make_record(days=3)], today)

        report = engine.analyze(snapshot, today=today + timedelta(days=10))

        assert report.analysis_date == today
        assert report.risk_assessments[0].days_until_expiry == 3

    def test_hospital_scope(self, engine, make_record, make_hospital, today):
        records = [
            make_record(days=3, units=10, hospital_id="H001"),
            make_record(days=3, units=10, hospital_id="H002"),
            make_record(days=3, units=10, hospital_id=None),
        ]

        report = engine.analyze(
            records, hospitals=[make_hospital("H001"), make_hospital("H002")],
            today=today, source_hospital_id="H001",
        )

        assert [a.hospital_id for a in report.risk_assessments] == ["H001"]
        assert report.scope == "hospital H001"
        assert all(r.source_hospital_id == "H001" for r in report.recommendations.transfer_recommendations)
        assert all(r.target_hospital_id != "H001" for r in report.recommendations.transfer_recommendations)

    def test_central_scope(self, engine, make_record, today):
        records = [make_record(days=3, hospital_id="H001"), make_record(days=3, hospital_id=None)]

        report = engine.analyze(records, today=today, lot_filter=LotFilter(hospital_ids=[None]))

        assert [a.hospital_id for a in report.risk_assessments] == [None]
        assert report.scope == "hospital central"

    def test_component_filter(self, engine, make_record, today):
        records = [
            make_record(days=3, component="platelets"),
            make_record(days=3, component="plasma"),
            make_record(days=3, component="whole_blood"),
        ]
        lot_filter = LotFilter(component_types=[ComponentType.PLATELETS])

        report = engine.analyze(records, today=today, lot_filter=lot_filter)

        assert {a.component_type for a in report.risk_assessments} == {ComponentType.PLATELETS}
        assert report.forecast.horizons[0].lot_count == 1

    def test_explicit_scope_label(self, engine, make_record, today):
        report = engine.analyze([make_record()], today=today, scope="admin dashboard")

        assert report.scope == "admin dashboard"

    def test_payload_round_trips(self, engine, make_record, make_hospital, today):
        records, hospitals = random_network(make_record, make_hospital, seed=3)
        report = engine.analyze(records, hospitals=hospitals, today=today)

        payload = json.loads(json.dumps(report.to_payload()))

        assert payload["analysis_date"] == today.isoformat()
        assert WastageReport.model_validate(payload) == report
