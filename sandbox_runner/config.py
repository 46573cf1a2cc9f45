from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runner settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Sandbox Provider
    sandbox_provider: Literal["e2b", "boxlite"] = "e2b"

    # E2B
    e2b_api_key: str = ""
    e2b_template_id: str = ""  # Optional: custom template with node preinstalled
    e2b_sandbox_timeout: int = 1800  # Sandbox lifetime in seconds

    # BoxLite Local Sandbox
    boxlite_image: str = "node:20-slim"
    boxlite_cpus: int = 2
    boxlite_memory_mib: int = 1024
    boxlite_disk_size_gb: int = 4  # npm install needs headroom
    boxlite_auto_remove: bool = True
    boxlite_host_port_start: int = 10000

    # Runner defaults
    runner_default_port: int = 3000
    runner_default_start_command: str = "npm start"
    runner_default_timeout: int = 60  # Readiness wait in seconds
    runner_root_dir_fallback: str = "/home/user"
    runner_extract_timeout: int = 60
    runner_install_command: str = "npm install --omit=dev"
    runner_install_timeout: int = 120
    runner_log_path: str = "/tmp/server.log"
    runner_bundle_excludes: str = "node_modules"  # Comma-separated directory names
    runner_probe_interval: float = 1.0
    runner_probe_attempt_timeout: int = 5
    runner_cleanup_on_prepare_failure: bool = True
    runner_log_tail_lines: int = 100

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    @field_validator("runner_default_port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"runner_default_port must be between 1 and 65535, got {value}")
        return value

    @property
    def bundle_excludes_list(self) -> list[str]:
        """Parse bundle excludes from comma-separated string."""
        return [name.strip() for name in self.runner_bundle_excludes.split(",") if name.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()


settings = get_settings()
