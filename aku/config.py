"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class AkuSettings(BaseSettings):
    dir: Path = Field(default_factory=lambda: Path.home() / ".aku")
    agent_command: list[str] = ["claude", "-p", "--dangerously-skip-permissions"]
    default_type: str = "general"
    follow_interval: float = 0.5  # seconds between polls in `aku attach`
    log_level: str = "WARNING"

    model_config = {"env_prefix": "AKU_"}

    @property
    def registry_path(self) -> Path:
        return self.dir / "agents.json"

    @property
    def lock_path(self) -> Path:
        return self.dir / "agents.lock"

    @property
    def logs_dir(self) -> Path:
        return self.dir / "logs"

    def log_path(self, name: str) -> Path:
        return self.logs_dir / f"{name}.log"

    def prompt_path(self, name: str) -> Path:
        return self.dir / f"{name}.prompt.md"


settings = AkuSettings()
