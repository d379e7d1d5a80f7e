"""
SSH-Konfiguration für den Remote-Spiegel der Export-Archive.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from mgomanager import config


class AuthMethod(str, Enum):
    KEY_ONLY = "key_only"
    PASSWORD_ONLY = "password_only"
    TRY_BOTH = "try_both"           # erst Key, dann Passwort


class SSHConfig(BaseModel):
    enabled: bool = False
    host: str = ""
    port: int = Field(default=22, ge=1, le=65535)
    username: str = ""
    password: str = ""
    private_key_path: str = ""
    auth_method: AuthMethod = AuthMethod.TRY_BOTH
    remote_path: str = "/home/mgo/exports/"
    auto_upload_on_export: bool = False

    @property
    def has_key(self) -> bool:
        return bool(self.private_key_path)

    @property
    def has_password(self) -> bool:
        return bool(self.password)

    def missing_settings(self) -> list[str]:
        """Liste fehlender Pflichtangaben (leer = vollständig konfiguriert)."""
        missing = []
        if not self.host.strip():
            missing.append("host")
        if not self.username.strip():
            missing.append("username")
        if self.auth_method == AuthMethod.KEY_ONLY and not self.has_key:
            missing.append("private_key_path")
        elif self.auth_method == AuthMethod.PASSWORD_ONLY and not self.has_password:
            missing.append("password")
        elif self.auth_method == AuthMethod.TRY_BOTH and not (self.has_key or self.has_password):
            missing.append("private_key_path/password")
        return missing

    @property
    def is_configured(self) -> bool:
        return not self.missing_settings()

    @classmethod
    def from_env(cls) -> "SSHConfig":
        """Baut die Konfiguration aus den MGO_SSH_* Umgebungsvariablen (config.py)."""
        return cls(
            enabled=config.SSH_ENABLED,
            host=config.SSH_HOST,
            port=config.SSH_PORT,
            username=config.SSH_USERNAME,
            password=config.SSH_PASSWORD,
            private_key_path=config.SSH_KEY_PATH,
            auth_method=AuthMethod(config.SSH_AUTH_METHOD),
            remote_path=config.SSH_REMOTE_PATH,
            auto_upload_on_export=config.SSH_AUTO_UPLOAD,
        )
