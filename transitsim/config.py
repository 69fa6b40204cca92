"""
Simulation settings.

Every tunable constant of route generation, regeneration and agent motion,
each overridable through a ``SIM_*`` environment variable. A ``.env`` file
next to the project root is loaded first when present.

Usage:
    from transitsim.config import settings

    settings.agent_count      # 100
    settings.batch_delay_ms   # 200.0
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, TypeVar

from dotenv import load_dotenv

T = TypeVar("T")

_dotenv = Path(__file__).resolve().parent.parent / ".env"
if _dotenv.exists():
    load_dotenv(_dotenv)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Route colours, picked by slot index modulo length
DEFAULT_PALETTE = (
    "#f97316",  # orange
    "#3b82f6",  # blue
    "#10b981",  # green
    "#8b5cf6",  # purple
    "#ef4444",  # red
    "#06b6d4",  # cyan
    "#f59e0b",  # amber
    "#ec4899",  # pink
    "#14b8a6",  # teal
    "#6366f1",  # indigo
)


def _env(key: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logging.warning(f"Ignoring {key}={raw!r}, not a valid {cast.__name__}")
        return default


def env_float(key: str, default: float) -> float:
    return _env(key, default, float)


def env_int(key: str, default: int) -> int:
    return _env(key, default, int)


def env_str(key: str, default: str) -> str:
    return _env(key, default, str)


def env_list(key: str) -> List[str]:
    """Comma-separated values; empty when unset."""
    return [item.strip() for item in os.getenv(key, "").split(",") if item.strip()]


@dataclass
class SimulationSettings:
    """Simulation constants; out-of-range values are reset in ``__post_init__``."""

    # Route generation
    agent_count: int = field(default_factory=lambda: env_int("SIM_AGENT_COUNT", 100))
    batch_size: int = field(default_factory=lambda: env_int("SIM_BATCH_SIZE", 5))
    batch_delay_ms: float = field(default_factory=lambda: env_float("SIM_BATCH_DELAY_MS", 200.0))
    endpoint_epsilon: float = field(default_factory=lambda: env_float("SIM_ENDPOINT_EPSILON", 0.005))
    fallback_place_name: str = field(default_factory=lambda: env_str("SIM_FALLBACK_PLACE_NAME", "Location"))

    # Regeneration trigger
    center_shift_threshold: float = field(default_factory=lambda: env_float("SIM_CENTER_SHIFT_THRESHOLD", 0.5))
    zoom_shift_threshold: float = field(default_factory=lambda: env_float("SIM_ZOOM_SHIFT_THRESHOLD", 1.5))
    settle_delay_ms: float = field(default_factory=lambda: env_float("SIM_SETTLE_DELAY_MS", 1000.0))

    # Agent motion
    speed_min_kmh: float = field(default_factory=lambda: env_float("SIM_SPEED_MIN_KMH", 60.0))
    speed_max_kmh: float = field(default_factory=lambda: env_float("SIM_SPEED_MAX_KMH", 100.0))
    km_per_degree: float = field(default_factory=lambda: env_float("SIM_KM_PER_DEGREE", 111.0))
    frame_rate_hz: float = field(default_factory=lambda: env_float("SIM_FRAME_RATE_HZ", 60.0))

    # Route line style
    route_line_width: float = field(default_factory=lambda: env_float("SIM_ROUTE_LINE_WIDTH", 2.0))
    route_line_opacity: float = field(default_factory=lambda: env_float("SIM_ROUTE_LINE_OPACITY", 0.15))
    palette: List[str] = field(default_factory=lambda: env_list("SIM_PALETTE") or list(DEFAULT_PALETTE))

    # Upstream services
    overpass_url: str = field(
        default_factory=lambda: env_str("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
    )
    osrm_url: str = field(default_factory=lambda: env_str("OSRM_URL", "https://router.project-osrm.org"))
    http_timeout_s: float = field(default_factory=lambda: env_float("HTTP_TIMEOUT_S", 25.0))

    def __post_init__(self):
        if self.agent_count < 0:
            logging.warning(f"SIM_AGENT_COUNT={self.agent_count} is negative, falling back to 100")
            self.agent_count = 100

        if self.batch_size < 1:
            logging.warning(f"SIM_BATCH_SIZE={self.batch_size} is below 1, falling back to 5")
            self.batch_size = 5

        if self.batch_delay_ms < 0:
            logging.warning(f"SIM_BATCH_DELAY_MS={self.batch_delay_ms} is negative, falling back to 200")
            self.batch_delay_ms = 200.0

        if not 0 < self.speed_min_kmh <= self.speed_max_kmh:
            logging.warning(
                f"Speed range {self.speed_min_kmh}-{self.speed_max_kmh} km/h is invalid, "
                f"falling back to 60-100"
            )
            self.speed_min_kmh, self.speed_max_kmh = 60.0, 100.0

        if self.frame_rate_hz <= 0:
            logging.warning(f"SIM_FRAME_RATE_HZ={self.frame_rate_hz} is not positive, falling back to 60")
            self.frame_rate_hz = 60.0

        if not self.palette:
            self.palette = list(DEFAULT_PALETTE)


def configure_logging(level: str = "info") -> None:
    """Root logging setup for entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=env_str("LOG_FORMAT", LOG_FORMAT),
    )


settings = SimulationSettings()
