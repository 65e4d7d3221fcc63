"""
Engine settings.

Settings are loaded from a YAML file, then overridden by environment
variables (a local .env file is honoured through python-dotenv).

Environment overrides:
    PORTFOLIO_ENGINE_NUM_CANDIDATES
    PORTFOLIO_ENGINE_SEED
    PORTFOLIO_ENGINE_RISK_AVERSION
    PORTFOLIO_ENGINE_OBJECTIVE
    PORTFOLIO_ENGINE_DATA_PERIOD
    PORTFOLIO_ENGINE_LOG_LEVEL
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional
import structlog
import yaml
from dotenv import load_dotenv

from portfolio_engine.errors import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"

# Pinned optimizer constants (candidate sequences must be reproducible)
DEFAULT_NUM_CANDIDATES = 3500
DEFAULT_SEED = 0xC0FFEE1234
DEFAULT_WEIGHT_FLOOR = 1e-6
DEFAULT_RISK_AVERSION = 0.5
DEFAULT_OBJECTIVE = "min_variance"

# Market data
TRADING_DAYS_PER_YEAR = 252
DEFAULT_DATA_PERIOD = "1y"
DEFAULT_DATA_INTERVAL = "1d"
MIN_CLOSES = 30
MIN_RETURNS = 20

_ENV_PREFIX = "PORTFOLIO_ENGINE_"
_ENV_KEYS = {
    "num_candidates": int,
    "seed": lambda v: int(v, 0),
    "risk_aversion": float,
    "objective": str,
    "data_period": str,
    "log_level": str,
}


@dataclass
class EngineSettings:
    """All tunables of the engine in one place."""
    num_candidates: int = DEFAULT_NUM_CANDIDATES
    seed: int = DEFAULT_SEED
    weight_floor: float = DEFAULT_WEIGHT_FLOOR
    risk_aversion: float = DEFAULT_RISK_AVERSION
    objective: str = DEFAULT_OBJECTIVE
    
    data_period: str = DEFAULT_DATA_PERIOD
    data_interval: str = DEFAULT_DATA_INTERVAL
    trading_days: int = TRADING_DAYS_PER_YEAR
    min_closes: int = MIN_CLOSES
    min_returns: int = MIN_RETURNS
    
    log_level: str = "INFO"
    
    def validate(self) -> None:
        """Raise ConfigurationError on values the engine cannot run with."""
        for f in fields(self):
            value = getattr(self, f.name)
            # ints are accepted where a float is expected
            accepted = (int, float) if f.type is float else f.type
            if isinstance(value, bool) or not isinstance(value, accepted):
                raise ConfigurationError(
                    f"{f.name} must be {f.type.__name__}, got {value!r}"
                )
        
        if self.num_candidates < 0:
            raise ConfigurationError("num_candidates must be >= 0")
        if not 0 <= self.seed < 2**64:
            raise ConfigurationError("seed must fit in 64 bits")
        if self.weight_floor <= 0:
            raise ConfigurationError("weight_floor must be > 0")
        if self.risk_aversion < 0:
            raise ConfigurationError("risk_aversion must be >= 0")
        if self.objective not in ("min_variance", "max_return", "max_score"):
            raise ConfigurationError(f"unknown objective: {self.objective}")
        if self.trading_days <= 0:
            raise ConfigurationError("trading_days must be > 0")
        if self.min_returns < 2 or self.min_closes <= self.min_returns:
            raise ConfigurationError("min_closes must exceed min_returns (>= 2)")
    
    def to_dict(self) -> dict:
        return asdict(self)


def _read_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse {path}: {e}") from e
    
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    
    # Settings may be nested under an "engine" section
    section = raw.get("engine", raw)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"{path}: engine section must be a mapping")
    return section


def load_settings(path: Optional[str] = None) -> EngineSettings:
    """
    Load settings from YAML and the environment.
    
    Args:
        path: YAML file path (defaults to config/settings.yaml)
    
    Returns:
        Validated EngineSettings
    """
    load_dotenv()
    
    config_path = Path(path or DEFAULT_CONFIG_PATH)
    values: dict = {}
    
    if config_path.exists():
        values = _read_yaml(config_path)
        logger.info("config_loaded", path=str(config_path))
    else:
        logger.warning("config_not_found_using_defaults", path=str(config_path))
    
    known = {f.name for f in fields(EngineSettings)}
    unknown = set(values) - known
    if unknown:
        raise ConfigurationError(f"unknown settings: {sorted(unknown)}")
    
    for key, cast in _ENV_KEYS.items():
        env_value = os.getenv(_ENV_PREFIX + key.upper())
        if env_value is None:
            continue
        try:
            values[key] = cast(env_value)
        except ValueError as e:
            raise ConfigurationError(f"invalid {_ENV_PREFIX}{key.upper()}: {env_value}") from e
    
    try:
        settings = EngineSettings(**values)
    except TypeError as e:
        raise ConfigurationError(str(e)) from e
    
    settings.validate()
    return settings
