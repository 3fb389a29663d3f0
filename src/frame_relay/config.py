"""
Runtime configuration

Settings are read from environment variables with sensible local defaults,
then validated through a pydantic model so that a bad timeout is caught at
startup rather than in the middle of a cycle.
"""
import os
from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_SERVER_URL = "http://127.0.0.1:8188"


class RelaySettings(BaseModel):
    """Connection, timeout and pacing settings for the relay."""

    # Service
    server_url: str = Field(DEFAULT_SERVER_URL, description="Base URL of the ComfyUI server")

    # Local artifacts and job graph
    capture_dir: str = Field("captures", description="Directory for captured frames")
    workflow_path: Optional[str] = Field(None, description="JSON workflow template (built-in if None)")
    input_node: str = Field("10", description="Node whose inputs.image receives the uploaded name")
    output_node: str = Field("9", description="Node whose images are polled for")
    camera_device: int = Field(0, ge=0, description="Camera index to open")

    # Timeouts (seconds)
    connect_timeout: float = Field(5.0, gt=0)
    upload_read_timeout: float = Field(120.0, gt=0)
    submit_read_timeout: float = Field(180.0, gt=0)
    poll_read_timeout: float = Field(180.0, gt=0)
    download_read_timeout: float = Field(180.0, gt=0)
    health_timeout: float = Field(3.0, gt=0)

    # Polling and loop pacing
    poll_timeout: float = Field(180.0, gt=0, description="Overall wait for a job result")
    poll_interval: float = Field(0.7, gt=0, description="Sleep between history queries")
    loop_pacing: float = Field(0.2, ge=0, description="Delay between cycles in loop mode")

    log_level: str = Field("INFO")

    @property
    def base_url(self) -> str:
        return self.server_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "RelaySettings":
        """Build settings from the process environment."""
        values = {
            "server_url": os.environ.get("COMFYUI_URL", DEFAULT_SERVER_URL),
            "capture_dir": os.environ.get("FRAME_RELAY_CAPTURE_DIR", "captures"),
            "workflow_path": os.environ.get("FRAME_RELAY_WORKFLOW") or None,
            "input_node": os.environ.get("FRAME_RELAY_INPUT_NODE", "10"),
            "output_node": os.environ.get("FRAME_RELAY_OUTPUT_NODE", "9"),
            "camera_device": os.environ.get("FRAME_RELAY_CAMERA", "0"),
            "log_level": os.environ.get("FRAME_RELAY_LOG_LEVEL", "INFO").upper(),
        }
        return cls(**values)


# Global settings instance
_settings: Optional[RelaySettings] = None


def get_settings() -> RelaySettings:
    """Get singleton settings."""
    global _settings
    if _settings is None:
        _settings = RelaySettings.from_env()
    return _settings
