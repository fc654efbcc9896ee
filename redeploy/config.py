"""Pipeline configuration, loaded from environment / .env file."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class PipelineSettings(BaseSettings):
    """Immutable settings handed to every pipeline stage."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }

    # Image / manifest
    image: str = ""
    image_placeholder: str = Field("IMAGE_PLACEHOLDER", min_length=1)
    manifest_path: str = "docker-compose.yml"
    workdir: str = "."

    # Application
    api_key: str = ""
    container_name: str = "app"
    app_port: int = Field(5000, ge=1, le=65535)

    # Health gate
    health_base_url: str = ""  # empty = http://localhost:{app_port}
    health_path: str = "/api/health"
    health_max_retries: int = Field(15, ge=0)
    health_retry_delay: float = Field(5.0, ge=0)
    health_timeout: float = Field(5.0, gt=0)

    # Workspace / version control
    clean_workspace: bool = False
    push_changes: bool = True
    git_user_name: str = "redeploy-bot"
    git_user_email: str = "redeploy-bot@users.noreply.github.com"
    git_remote_url: str = ""  # empty = push to the checkout's "origin"
    git_username: str = "x-access-token"
    git_token: str = ""
    git_branch: str = "main"
    commit_message: str = "Deploy {image}"

    # Compose
    compose_command: str = "docker compose"
    compose_file: str = ""
    command_timeout: int = Field(600, ge=1)

    # Notifications (optional)
    slack_webhook_url: str = ""
    discord_webhook_url: str = ""

    # Logging
    log_level: str = "INFO"

    @field_validator("health_path")
    @classmethod
    def ensure_leading_slash(cls, value: str) -> str:
        if value and not value.startswith("/"):
            return f"/{value}"
        return value

    @field_validator("health_base_url")
    @classmethod
    def ensure_http_base_url(cls, value: str) -> str:
        if value and not value.startswith(("http://", "https://")):
            raise ValueError("health_base_url must start with http:// or https://")
        return value

    @field_validator("commit_message")
    @classmethod
    def ensure_renderable_commit_message(cls, value: str) -> str:
        try:
            value.format(image="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(
                f"commit_message may only use the {{image}} placeholder: {e!r}"
            ) from e
        return value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @property
    def manifest_file(self) -> Path:
        return Path(self.workdir) / self.manifest_path

    @property
    def health_url(self) -> str:
        """Full URL probed by the health gate."""
        base = self.health_base_url or f"http://localhost:{self.app_port}"
        return f"{base.rstrip('/')}{self.health_path}"

    @property
    def rendered_commit_message(self) -> str:
        return self.commit_message.format(image=self.image)

    @property
    def secrets(self) -> list[str]:
        """Values that must never appear in logs or error output."""
        return [s for s in (self.git_token, self.api_key) if s]
