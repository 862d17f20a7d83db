"""Tests for pill recommendations and dispense/refill command construction."""

from __future__ import annotations

import pytest

from vitadash.domains.dispenser.domain_logic.recommendations import (
    CAUTION_HIGH_INTAKE,
    REASON_ANEMIA,
    REASON_BONE,
    REASON_CARDIOVASCULAR,
    REASON_DEFAULT,
    REASON_LOW_INTAKE,
    InsufficientStockError,
    PillBottleConfig,
    PillRecommendation,
    build_dispense_command,
    build_dispense_request,
    build_refill_command,
    intake_ratio,
    load_pill_presets,
    recommend_pills,
)
from vitadash.domains.dispenser.domain_logic.requirements import estimate_requirement

REQ_2000 = estimate_requirement(None)


@pytest.fixture
def config() -> PillBottleConfig:
    return PillBottleConfig.from_dict({"bottle1": "종합비타민", "bottle2": "", "bottle3": "오메가3"})


def _reasons(recs: list[PillRecommendation]) -> dict[int, str]:
    return {r.bottle_id: r.reason for r in recs}


class TestPillBottleConfig:
    @pytest.mark.parametrize(
        "data",
        [
            {"bottle1": "A", "bottle3": "C"},
            {"1": "A", "3": "C"},
            {"bottles": {"bottle1": "A", "3": "C"}},
        ],
    )
    def test_accepted_layouts(self, data):
        assert PillBottleConfig.from_dict(data).configured() == [(1, "A"), (3, "C")]

    def test_ignores_unrelated_keys(self):
        config = PillBottleConfig.from_dict({"bottle1": "A", "updatedAt": "now"})
        assert config.bottles == {1: "A"}

    def test_to_dict_and_lookup(self, config):
        assert config.to_dict() == {"bottle1": "종합비타민", "bottle2": "", "bottle3": "오메가3"}
        assert config.bottle_for("오메가3") == 3
        assert config.bottle_for("철분") is None


class TestIntakeRatio:
    def test_ratio(self):
        assert intake_ratio(1000, REQ_2000) == 0.5

    @pytest.mark.parametrize("total", [0, None, -10])
    def test_missing_intake_is_neutral(self, total):
        assert intake_ratio(total, REQ_2000) == 1.0

    def test_missing_requirement_is_neutral(self):
        assert intake_ratio(500, None) == 1.0


class TestRecommendPills:
    def test_empty_bottle_skipped(self, config):
        for total in (0, 380, 2000, 5000):
            for diseases in ([], ["심혈관질환"], ["골다공증", "빈혈"]):
                recs = recommend_pills(total, REQ_2000, diseases, config)
                assert 2 not in {r.bottle_id for r in recs}

    def test_default_reason(self, config):
        recs = recommend_pills(2000, REQ_2000, [], config)
        assert [(r.bottle_id, r.pill_name, r.count) for r in recs] == [
            (1, "종합비타민", 1),
            (3, "오메가3", 1),
        ]
        assert _reasons(recs) == {1: REASON_DEFAULT, 3: REASON_DEFAULT}

    def test_low_intake_targets_general_vitamin(self, config):
        recs = recommend_pills(380, REQ_2000, [], config)
        assert _reasons(recs) == {1: REASON_LOW_INTAKE, 3: REASON_DEFAULT}

    def test_cardiovascular_targets_omega3(self, config):
        recs = recommend_pills(2000, REQ_2000, ["심혈관질환"], config)
        assert _reasons(recs)[3] == REASON_CARDIOVASCULAR

    def test_high_intake_appends_caution(self, config):
        recs = recommend_pills(2600, REQ_2000, ["심혈관질환"], config)
        assert _reasons(recs) == {
            1: REASON_DEFAULT + CAUTION_HIGH_INTAKE,
            3: REASON_CARDIOVASCULAR + CAUTION_HIGH_INTAKE,
        }

    def test_later_rule_overrides(self):
        config = PillBottleConfig.from_dict({"bottle1": "비타민 D"})
        recs = recommend_pills(380, REQ_2000, ["골다공증"], config)
        assert recs[0].reason == REASON_BONE

    def test_anemia_targets_iron(self):
        config = PillBottleConfig.from_dict({"bottle2": "철분/빈혈"})
        recs = recommend_pills(2000, REQ_2000, ["빈혈"], config)
        assert recs[0].reason == REASON_ANEMIA

    def test_english_pill_names(self):
        config = PillBottleConfig.from_dict({"bottle1": "Omega-3 Fish Oil"})
        recs = recommend_pills(2000, REQ_2000, ["cardiovascular disease"], config)
        assert recs[0].reason == REASON_CARDIOVASCULAR

    def test_no_config(self):
        assert recommend_pills(380, REQ_2000, ["빈혈"], None) == []


class TestCommands:
    def test_dispense(self):
        command = build_dispense_command(1, 2, remaining=5, requested_at=10.0)
        assert command.to_dict() == {
            "bottle_id": 1, "count": 2, "kind": "dispense", "requested_at": 10.0,
        }

    def test_dispense_without_known_stock(self):
        assert build_dispense_command(2, 1).requested_at > 0

    def test_insufficient_stock(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            build_dispense_command(3, 3, remaining=2)
        assert exc_info.value.bottle_id == 3
        assert exc_info.value.requested == 3
        assert exc_info.value.remaining == 2

    @pytest.mark.parametrize("bottle_id, count", [(4, 1), (0, 1), (1, 0), (1, -2)])
    def test_invalid(self, bottle_id, count):
        with pytest.raises(ValueError):
            build_dispense_command(bottle_id, count)

    def test_refill_tops_up(self):
        command = build_refill_command(2, 9, requested_at=5.0)
        assert (command.kind, command.bottle_id, command.count) == ("refill", 2, 9)
        assert build_refill_command(2, -3).count == 18

    def test_refill_when_full(self):
        assert build_refill_command(1, 18) is None

    def test_dispense_request_skips_short_bottles(self, config):
        recs = recommend_pills(380, REQ_2000, ["심혈관질환", "비만"], config)
        request, insufficient = build_dispense_request(
            recs, REQ_2000, 380, ["심혈관질환", "비만", "비만"],
            created_at=100.0, pill_counts={1: 0, 3: 4},
        )
        assert [r.bottle_id for r in request.items] == [3]
        assert [r.bottle_id for r in insufficient] == [1]
        assert request.to_dict() == {
            "created_at": 100.0,
            "status": "pending",
            "total_kcal": 380,
            "recommended_kcal": 2000,
            "selected_diseases": ["비만", "심혈관질환"],
            "items": [{"bottle_id": 3, "pill_name": "오메가3", "count": 1}],
        }

    def test_dispense_request_without_stock_info(self, config):
        recs = recommend_pills(380, REQ_2000, [], config)
        request, insufficient = build_dispense_request(recs, REQ_2000, 380, [])
        assert len(request.items) == 2
        assert insufficient == []


class TestPresets:
    def test_bundled_presets(self):
        presets = load_pill_presets()
        assert "종합비타민" in presets["pill_options"]
        assert [p["bottle_id"] for p in presets["presets"]] == [1, 2, 3]
