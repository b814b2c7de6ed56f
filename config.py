import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Static configuration, read once at startup."""

    base_url: str = "https://api.aviationapi.com"
    airports_path: str = "/v1/airports"
    timeout_seconds: float = 10.0
    max_retries: int = 3
    retry_delay_millis: int = 500
    cache_ttl_minutes: int = 60
    cache_max_size: int = 1000
    cache_single_flight: bool = False

    # Circuit breaker
    cb_sliding_window_size: int = 10
    cb_minimum_number_of_calls: int = 5
    cb_failure_rate_threshold: float = 50.0
    cb_slow_call_rate_threshold: float = 100.0
    cb_slow_call_duration_seconds: float = 5.0
    cb_wait_duration_seconds: float = 30.0
    cb_permitted_calls_in_half_open_state: int = 3

    # Rate limiter
    rl_limit_for_period: int = 100
    rl_refresh_seconds: float = 60.0
    rl_timeout_seconds: float = 5.0

    log_level: str = "INFO"
    debug: bool = False

    def __post_init__(self):
        if not self.base_url or not self.base_url.strip():
            raise ValueError("AVIATION_API_BASE_URL must not be blank")
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if f.name == "rl_timeout_seconds":
                continue
            if f.name.endswith("_threshold"):
                if not 0 < value <= 100:
                    raise ValueError(f"{f.name} must be in (0, 100], got {value}")
            elif f.name.endswith("_seconds"):
                if value <= 0:
                    raise ValueError(f"{f.name} must be positive, got {value}")
            elif value < 1:
                raise ValueError(f"{f.name} must be at least 1, got {value}")
        if self.rl_timeout_seconds < 0:
            raise ValueError("rl_timeout_seconds must not be negative")

    @property
    def airport_cache_ttl_seconds(self) -> float:
        return self.cache_ttl_minutes * 60.0

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_millis / 1000.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            base_url=env.get("AVIATION_API_BASE_URL", cls.base_url),
            airports_path=env.get("AVIATION_API_AIRPORTS_PATH", cls.airports_path),
            timeout_seconds=float(env.get("AVIATION_API_TIMEOUT_SECONDS", cls.timeout_seconds)),
            max_retries=int(env.get("AVIATION_API_MAX_RETRIES", cls.max_retries)),
            retry_delay_millis=int(env.get("AVIATION_API_RETRY_DELAY_MILLIS", cls.retry_delay_millis)),
            cache_ttl_minutes=int(env.get("AVIATION_API_CACHE_TTL_MINUTES", cls.cache_ttl_minutes)),
            cache_max_size=int(env.get("AVIATION_API_CACHE_MAX_SIZE", cls.cache_max_size)),
            cache_single_flight=_env_bool(env, "AVIATION_CACHE_SINGLE_FLIGHT", cls.cache_single_flight),
            cb_sliding_window_size=int(env.get("AVIATION_CB_SLIDING_WINDOW_SIZE", cls.cb_sliding_window_size)),
            cb_minimum_number_of_calls=int(
                env.get("AVIATION_CB_MINIMUM_NUMBER_OF_CALLS", cls.cb_minimum_number_of_calls)
            ),
            cb_failure_rate_threshold=float(
                env.get("AVIATION_CB_FAILURE_RATE_THRESHOLD", cls.cb_failure_rate_threshold)
            ),
            cb_slow_call_rate_threshold=float(
                env.get("AVIATION_CB_SLOW_CALL_RATE_THRESHOLD", cls.cb_slow_call_rate_threshold)
            ),
            cb_slow_call_duration_seconds=float(
                env.get("AVIATION_CB_SLOW_CALL_DURATION_SECONDS", cls.cb_slow_call_duration_seconds)
            ),
            cb_wait_duration_seconds=float(
                env.get("AVIATION_CB_WAIT_DURATION_SECONDS", cls.cb_wait_duration_seconds)
            ),
            cb_permitted_calls_in_half_open_state=int(
                env.get("AVIATION_CB_PERMITTED_CALLS_IN_HALF_OPEN_STATE", cls.cb_permitted_calls_in_half_open_state)
            ),
            rl_limit_for_period=int(env.get("AVIATION_RL_LIMIT_FOR_PERIOD", cls.rl_limit_for_period)),
            rl_refresh_seconds=float(env.get("AVIATION_RL_REFRESH_SECONDS", cls.rl_refresh_seconds)),
            rl_timeout_seconds=float(env.get("AVIATION_RL_TIMEOUT_SECONDS", cls.rl_timeout_seconds)),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
            debug=_env_bool(env, "DEBUG", cls.debug),
        )
