"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "safezone-core"
    debug: bool = False
    log_level: str = "INFO"

    # Geofence classification
    boundary_distance_m: float = 50.0

    # Alarm ladder
    warning_dwell_seconds: float = 25.0

    # Monitoring arbitration
    liveness_window_seconds: float = 30.0

    # Fences loaded at startup (JSON, see fences.example.json)
    fences_file: str | None = None

    # Background monitor
    monitor_interval_seconds: float = 5.0
    monitor_start_delay_seconds: float = 10.0

    # Notification dispatch
    notification_queue_size: int = 1000

    model_config = {"env_prefix": "SAFEZONE_"}


settings = Settings()
