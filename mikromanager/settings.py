from typing import List

from pydantic_settings import BaseSettings
from pydantic import Field


class AppSettings(BaseSettings):
    app_name: str = Field(default="MikroTik Manager API Server")
    app_version: str = Field(default="1.0.0")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # REST transport (RouterOS 7.1+)
    rest_https: bool = Field(default=True)
    rest_tls_verify: bool = Field(default=False)
    rest_timeout_seconds: float = Field(default=10.0)

    # Binary API transport
    api_port: int = Field(default=8728)
    api_timeout_seconds: float = Field(default=10.0)

    # SSH transport
    ssh_port: int = Field(default=22)
    ssh_connect_timeout_seconds: float = Field(default=15.0)
    ssh_command_timeout_seconds: float = Field(default=20.0)

    # Wait between triggering a backup and reading back the file size
    backup_settle_seconds: float = Field(default=2.0)

    class Config:
        env_file = ".env"


settings = AppSettings()
