"""
Settings loading tests.
"""

import pytest

from portfolio_engine.config import (
    DEFAULT_NUM_CANDIDATES,
    DEFAULT_SEED,
    EngineSettings,
    load_settings,
)
from portfolio_engine.errors import ConfigurationError


@pytest.fixture
def settings_file(tmp_path):
    def write(text):
        path = tmp_path / "settings.yaml"
        path.write_text(text)
        return str(path)
    
    return write


class TestLoadSettings:
    """Test YAML and environment loading."""
    
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "absent.yaml"))
        
        assert settings.num_candidates == DEFAULT_NUM_CANDIDATES == 3500
        assert settings.seed == DEFAULT_SEED == 0xC0FFEE1234
    
    def test_engine_section(self, settings_file):
        path = settings_file("engine:\n  num_candidates: 1000\n  objective: max_score\n  seed: 0x10\n")
        
        settings = load_settings(path)
        
        assert settings.num_candidates == 1000
        assert settings.objective == "max_score"
        assert settings.seed == 16
    
    def test_flat_mapping(self, settings_file):
        settings = load_settings(settings_file("risk_aversion: 2.5\n"))
        assert settings.risk_aversion == 2.5
    
    def test_empty_file(self, settings_file):
        assert load_settings(settings_file("")) == EngineSettings()
    
    def test_empty_engine_section(self, settings_file):
        assert load_settings(settings_file("engine:\n")) == EngineSettings()
    
    def test_engine_section_not_a_mapping(self, settings_file):
        with pytest.raises(ConfigurationError, match="engine section"):
            load_settings(settings_file("engine:\n  - num_candidates\n"))
    
    @pytest.mark.parametrize("text", [
        "engine:\n  num_candidates: abc\n",
        "engine:\n  risk_aversion: high\n",
        "engine:\n  objective: 3\n",
        "engine:\n  num_candidates: true\n",
    ])
    def test_wrong_value_type(self, settings_file, text):
        with pytest.raises(ConfigurationError, match="must be"):
            load_settings(settings_file(text))
    
    def test_integer_accepted_for_float(self, settings_file):
        settings = load_settings(settings_file("engine:\n  risk_aversion: 2\n"))
        assert settings.risk_aversion == 2
    
    def test_unknown_key(self, settings_file):
        with pytest.raises(ConfigurationError, match="unknown settings"):
            load_settings(settings_file("engine:\n  candidates: 10\n"))
    
    def test_invalid_yaml(self, settings_file):
        with pytest.raises(ConfigurationError):
            load_settings(settings_file("engine: [unclosed\n"))
    
    def test_env_overrides(self, settings_file, monkeypatch):
        monkeypatch.setenv("PORTFOLIO_ENGINE_NUM_CANDIDATES", "42")
        monkeypatch.setenv("PORTFOLIO_ENGINE_SEED", "0xFF")
        monkeypatch.setenv("PORTFOLIO_ENGINE_OBJECTIVE", "max_return")
        
        settings = load_settings(settings_file("engine:\n  num_candidates: 1000\n"))
        
        assert settings.num_candidates == 42
        assert settings.seed == 255
        assert settings.objective == "max_return"
    
    def test_bad_env_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PORTFOLIO_ENGINE_RISK_AVERSION", "high")
        
        with pytest.raises(ConfigurationError, match="RISK_AVERSION"):
            load_settings(str(tmp_path / "absent.yaml"))


class TestValidate:
    """Test settings validation."""
    
    @pytest.mark.parametrize("overrides", [
        {"num_candidates": -1},
        {"seed": -5},
        {"seed": 2**64},
        {"weight_floor": 0.0},
        {"risk_aversion": -0.1},
        {"objective": "max_sharpe"},
        {"trading_days": 0},
        {"min_closes": 10, "min_returns": 20},
    ])
    def test_rejected(self, overrides):
        with pytest.raises(ConfigurationError):
            EngineSettings(**overrides).validate()
    
    def test_defaults_valid(self):
        EngineSettings().validate()
        assert EngineSettings().to_dict()["objective"] == "min_variance"
    
    def test_shipped_settings_file(self):
        """config/settings.yaml loads and matches the built-in defaults."""
        from pathlib import Path
        
        path = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"
        
        settings = load_settings(str(path))
        
        assert settings.seed == DEFAULT_SEED
        assert settings.num_candidates == DEFAULT_NUM_CANDIDATES
