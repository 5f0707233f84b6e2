"""
Tests for per-lot spoilage risk scoring and tier classification.
"""
import pytest

from lifeline.agents.risk_scoring import RiskScoringAgent
from lifeline.schemas.inventory import ComponentType
from lifeline.schemas.wastage import RiskTier, WastageEngineConfig


@pytest.fixture
def agent(config):
    return RiskScoringAgent(config)


class TestScore:
    """Test the scoring curve."""

    @pytest.mark.parametrize("component", list(ComponentType))
    @pytest.mark.parametrize("units", [1, 5, 20, 200])
    def test_score_bounded(self, agent, component, units):
        """Scores stay in [0, 100] across the whole shelf life."""
        for days in range(1, 400):
            score = agent.score(component, days, units)
            assert 0.0 <= score <= 100.0

    @pytest.mark.parametrize("component", list(ComponentType))
    @pytest.mark.parametrize("units", [1, 12, 40])
    def test_score_monotonic_in_days(self, agent, component, units):
        """Closer to expiry never scores lower."""
        scores = [agent.score(component, days, units) for days in range(1, 60)]
        for closer, further in zip(scores, scores[1:]):
            assert closer >= further

    @pytest.mark.parametrize("units", [1, 20, 60])
    def test_component_sensitivity(self, agent, units):
        """Platelets >= whole blood >= plasma at equal days and units."""
        for days in range(1, 45):
            platelets = agent.score(ComponentType.PLATELETS, days, units)
            whole_blood = agent.score(ComponentType.WHOLE_BLOOD, days, units)
            plasma = agent.score(ComponentType.PLASMA, days, units)
            assert platelets >= whole_blood >= plasma

    def test_platelets_three_days_outrank_whole_blood(self, agent):
        """Three days is most of a platelet's life but a small part of whole blood's."""
        assert agent.score(ComponentType.PLATELETS, 3, 20) > agent.score(ComponentType.WHOLE_BLOOD, 3, 20)

    def test_single_lot_near_expiry_is_critical(self, agent):
        """Whole blood, 40 units, 3 days left."""
        score = agent.score(ComponentType.WHOLE_BLOOD, 3, 40)

        assert score == pytest.approx(85.4)
        assert score >= 70
        assert agent.classify(score) == RiskTier.CRITICAL

    def test_far_from_expiry_scores_zero(self, agent):
        assert agent.score(ComponentType.WHOLE_BLOOD, 30, 20) == 0.0
        assert agent.score(ComponentType.WHOLE_BLOOD, 41, 20) == 0.0

    def test_small_lots_damped(self, agent):
        """A single unit carries less wastage risk than a full lot."""
        small = agent.score(ComponentType.WHOLE_BLOOD, 3, 1)
        large = agent.score(ComponentType.WHOLE_BLOOD, 3, 40)
        assert small < large
        # Damping is capped by volume_weight
        assert small >= large * (1 - agent.config.volume_weight) - 0.1

    def test_identical_inputs_score_identically(self, agent):
        first = agent.score(ComponentType.PLATELETS, 2, 7)
        other_agent = RiskScoringAgent()
        assert other_agent.score(ComponentType.PLATELETS, 2, 7) == first

    def test_expired_lot_rejected(self, agent):
        with pytest.raises(ValueError, match="expired"):
            agent.score(ComponentType.WHOLE_BLOOD, 0, 10)

    def test_empty_lot_rejected(self, agent):
        with pytest.raises(ValueError, match="empty"):
            agent.score(ComponentType.WHOLE_BLOOD, 5, 0)

    def test_score_lot_requires_scorable(self, agent, make_lot):
        with pytest.raises(ValueError, match="not scorable"):
            agent.score_lot(make_lot(status="reserved"))


class TestClassify:
    """Test tier thresholds."""

    @pytest.mark.parametrize("score,tier", [
        (100.0, RiskTier.CRITICAL),
        (85.0, RiskTier.CRITICAL),
        (84.9, RiskTier.HIGH),
        (70.0, RiskTier.HIGH),
        (69.9, RiskTier.MEDIUM),
        (50.0, RiskTier.MEDIUM),
        (49.9, RiskTier.LOW),
        (0.0, RiskTier.LOW),
    ])
    def test_default_thresholds(self, agent, score, tier):
        assert agent.classify(score) == tier

    def test_custom_thresholds(self):
        agent = RiskScoringAgent(WastageEngineConfig(
            critical_score_threshold=95,
            high_score_threshold=80,
            medium_score_threshold=60,
        ))
        assert agent.classify(90) == RiskTier.HIGH
        assert agent.classify(70) == RiskTier.MEDIUM
        assert agent.classify(59) == RiskTier.LOW


class TestExecute:
    """Test scoring a set of lots."""

    def test_skips_unscorable_lots(self, agent, make_lot):
        lots = [
            make_lot(days=3, lot_id="OK"),
            make_lot(days=0, lot_id="EXPIRED_BY_DATE"),
            make_lot(days=5, status="expired", lot_id="EXPIRED_BY_LABEL"),
            make_lot(days=5, status="reserved", lot_id="RESERVED"),
            make_lot(days=5, units=0, lot_id="EMPTY"),
        ]

        assessments = agent.execute(lots)

        assert [a.lot_id for a in assessments] == ["OK"]

    def test_ordered_by_score_then_days(self, agent, make_lot):
        lots = [
            make_lot(days=20, lot_id="C"),
            make_lot(days=2, lot_id="A"),
            make_lot(days=6, lot_id="B"),
        ]

        assessments = agent.execute(lots)

        assert [a.lot_id for a in assessments] == ["A", "B", "C"]

    def test_at_risk_uses_near_expiry_window(self, agent, make_lot):
        assessments = {a.lot_id: a for a in agent.execute([
            make_lot(days=7, lot_id="EDGE"),
            make_lot(days=8, lot_id="OUTSIDE"),
        ])}

        assert assessments["EDGE"].at_risk
        assert not assessments["OUTSIDE"].at_risk

    def test_high_scoring_platelets_outside_window_at_risk(self, agent, make_lot):
        """Platelets 10 days out score critical and count as at risk."""
        assessment = agent.execute([make_lot(days=10, units=20, component="platelets")])[0]

        assert assessment.risk_score == pytest.approx(94.1, abs=0.05)
        assert assessment.risk_tier == RiskTier.CRITICAL
        assert assessment.at_risk

    def test_low_score_outside_window_not_at_risk(self, agent):
        assert not agent.is_at_risk(8, 62.8)
        assert agent.is_at_risk(8, 70.0)
        assert not agent.is_at_risk(0, 95.0)

    def test_every_high_risk_lot_is_at_risk(self, agent, make_lot):
        lots = [
            make_lot(days=d, units=u, component=c)
            for c in ("whole_blood", "platelets", "plasma")
            for d in (1, 3, 7, 10, 30, 60)
            for u in (2, 20)
        ]

        assessments = agent.execute(lots)

        assert all(a.at_risk for a in assessments if a.is_high_risk)

    def test_assessment_carries_lot_fields(self, agent, make_lot):
        lot = make_lot(days=3, units=40, blood_type="O-", hospital_id=None)

        assessment = agent.assess(lot)

        assert assessment.lot_id == lot.lot_id
        assert assessment.hospital_id is None
        assert assessment.available_units == 40
        assert assessment.risk_tier == RiskTier.CRITICAL
        assert assessment.is_high_risk
