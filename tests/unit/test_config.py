"""规则配置测试"""
from dataclasses import FrozenInstanceError

import pytest

from dotenko.config import GameRuleConfig


class TestDefaults:
    """默认值测试"""

    def test_defaults(self):
        config = GameRuleConfig()
        assert config.round_count == 5
        assert config.joker_count == 2
        assert config.base_rate == 1
        assert config.up_rate_threshold == 3
        assert config.hand_limit == 7
        assert config.initial_hand_size == 2
        assert not config.extended_plays
        assert not config.challenge_after_dotenko
        assert not config.allow_revenge

    def test_frozen(self):
        config = GameRuleConfig()
        with pytest.raises(FrozenInstanceError):
            config.base_rate = 5


class TestValidation:
    """参数校验测试"""

    @pytest.mark.parametrize("kwargs", [
        {"round_count": 0},
        {"joker_count": 5},
        {"joker_count": -1},
        {"base_rate": 0},
        {"up_rate_threshold": 1},
        {"max_score": -1},
        {"deck_cycle_limit": -1},
        {"initial_hand_size": 7},
        {"initial_hand_size": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            GameRuleConfig(**kwargs)

    def test_unlimited_values(self):
        config = GameRuleConfig(max_score=None, deck_cycle_limit=None, up_rate_threshold=None)
        assert config.max_score is None
        assert config.deck_cycle_limit is None


class TestFromDict:
    """从设置存储读取测试"""

    def test_unknown_keys_ignored(self):
        config = GameRuleConfig.from_dict({"round_count": 3, "bgm_volume": 0.5})
        assert config.round_count == 3

    def test_string_numbers(self):
        config = GameRuleConfig.from_dict({"joker_count": "4", "base_rate": "10"})
        assert config.joker_count == 4
        assert config.base_rate == 10

    @pytest.mark.parametrize("token", ["♾️", "なし", "unlimited", "None", ""])
    def test_unlimited_tokens(self, token):
        config = GameRuleConfig.from_dict({"max_score": token, "deck_cycle_limit": token})
        assert config.max_score is None
        assert config.deck_cycle_limit is None

    def test_numeric_limits(self):
        config = GameRuleConfig.from_dict({"max_score": "500", "deck_cycle_limit": 1})
        assert config.max_score == 500
        assert config.deck_cycle_limit == 1

    def test_invalid_value(self):
        with pytest.raises(ValueError):
            GameRuleConfig.from_dict({"max_score": "lots"})

    def test_to_dict(self):
        config = GameRuleConfig(round_count=2, max_score=None)
        d = config.to_dict()
        assert d["round_count"] == 2
        assert d["max_score"] is None
        assert GameRuleConfig.from_dict(d) == config
