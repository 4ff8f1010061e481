"""Tests for the XP reward engine."""

import pytest

from rpg_tutor.errors import InvalidArgument
from rpg_tutor.stats import StatBlock
from rpg_tutor.xp import (
    DEFAULT_TUNING,
    RewardTuning,
    normalize_subject,
    relevant_stats_for_subject,
    time_bonus_for,
    xp_reward,
)

BASELINE = {"primary": 10, "secondary": 10}


class TestXpReward:
    def test_baseline_stats_max_difficulty(self):
        reward = xp_reward(5, 1.0, 0.0, BASELINE)
        assert reward.base_xp == 50
        assert reward.accuracy_bonus == 25
        assert reward.time_bonus == 0
        assert reward.stat_bonus == 0
        assert reward.total_xp == 75

    def test_time_bonus_adds_share_of_base(self):
        reward = xp_reward(5, 0.0, 1.0, BASELINE)
        assert reward.time_bonus == 15
        assert reward.total_xp == 65

    def test_higher_stats_earn_more(self):
        reward = xp_reward(4, 0.0, 0.0, {"primary": 20, "secondary": 15})
        assert reward.stat_bonus == 10
        assert reward.total_xp == 50

    def test_secondary_stat_optional(self):
        reward = xp_reward(2, 0.0, 0.0, {"primary": 10})
        assert reward.total_xp == 20

    def test_diminishing_returns(self):
        # linear bonus would be (50 - 10) * 0.02 = 0.8 of the subtotal
        reward = xp_reward(2, 0.0, 0.0, {"primary": 50})
        assert 0 < reward.stat_bonus < 16

    def test_penalty_floor(self):
        tuning = RewardTuning(primary_stat_rate=0.1)
        reward = xp_reward(2, 0.0, 0.0, {"primary": 0, "secondary": 10}, tuning)
        assert reward.stat_bonus == -10
        assert reward.total_xp == 10

    def test_never_negative(self):
        reward = xp_reward(1, 0.0, 0.0, {"primary": 0, "secondary": 0})
        assert reward.total_xp >= 0

    def test_monotonic_in_difficulty(self):
        totals = [xp_reward(d, 0.5, 0.5, BASELINE).total_xp for d in range(1, 6)]
        assert totals == sorted(totals)

    def test_negative_time_bonus_ignored(self):
        assert xp_reward(3, 1.0, -1.0, BASELINE) == xp_reward(3, 1.0, 0.0, BASELINE)

    @pytest.mark.parametrize("difficulty", [0, 6, -1])
    def test_difficulty_out_of_range(self, difficulty):
        with pytest.raises(InvalidArgument):
            xp_reward(difficulty, 1.0, 0.0, BASELINE)

    @pytest.mark.parametrize("accuracy", [-0.1, 1.5])
    def test_accuracy_out_of_range(self, accuracy):
        with pytest.raises(InvalidArgument):
            xp_reward(3, accuracy, 0.0, BASELINE)

    def test_missing_primary_stat(self):
        with pytest.raises(InvalidArgument):
            xp_reward(3, 1.0, 0.0, {"secondary": 10})

    def test_tuning_changes_base(self):
        tuning = RewardTuning(xp_per_difficulty=20)
        assert xp_reward(1, 0.0, 0.0, BASELINE, tuning).base_xp == 20


class TestRewardTuning:
    def test_defaults(self):
        assert RewardTuning.from_dict({}) == DEFAULT_TUNING

    def test_ignores_unknown_and_non_numeric(self):
        tuning = RewardTuning.from_dict({"xp_per_difficulty": 12, "bogus": 3, "time_weight": "fast"})
        assert tuning.xp_per_difficulty == 12
        assert tuning.time_weight == DEFAULT_TUNING.time_weight


class TestSubjects:
    def test_normalize(self):
        assert normalize_subject("Language Arts") == "language-arts"
        assert normalize_subject("  Mathematics ") == "mathematics"

    def test_relevant_stats_for_known_subject(self):
        stats = StatBlock(intelligence=14, wisdom=12)
        assert relevant_stats_for_subject("Mathematics", stats) == {"primary": 14, "secondary": 12}

    def test_unknown_subject_uses_default(self):
        stats = StatBlock(intelligence=11, wisdom=13)
        assert relevant_stats_for_subject("alchemy", stats) == {"primary": 11, "secondary": 13}


class TestTimeBonus:
    def test_fraction_of_limit_left(self):
        assert time_bonus_for(15, 30) == 0.5

    def test_clamped(self):
        assert time_bonus_for(45, 30) == 0.0
        assert time_bonus_for(-5, 30) == 1.0

    def test_no_limit(self):
        assert time_bonus_for(5, 0) == 0.0
