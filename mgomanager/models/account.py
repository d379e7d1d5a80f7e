"""
Account Models
===============

Pydantic-Modelle für einen gesicherten Spiel-Account.

Ein Account verknüpft:
  - Anzeigename (prefix + account_name)
  - Backup-Verzeichnis auf dem Geräte-Storage (<root>/<prefix><name>/)
  - Die beim Backup gelesenen Datei-Berechtigungen (Owner/Group/Mode)
  - Geräte-IDs (user_id, ssaid, gaid, ...) — werden gespeichert, nicht interpretiert
  - Operator-Flags (sus_level, has_error)
  - Optionale Facebook-Verknüpfung

SQL-Schema: Siehe database.py → CREATE TABLE accounts
"""

from __future__ import annotations

import re
from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from mgomanager.models.permissions import FilePermissions, check_mode, check_principal

# Name und Prefix bilden den Backup-Ordner und stehen in Root-Shell-Befehlen.
# Kein führender Punkt, sonst wären "." und ".." gültige Ordnernamen.
_ACCOUNT_NAME_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")


def check_account_name(value: str) -> str:
    if not _ACCOUNT_NAME_RE.match(value):
        raise ValueError(
            f"Ungültiger Account-Name: {value!r} (erlaubt: A-Z, a-z, 0-9, _ . -)"
        )
    return value


def check_prefix(value: str) -> str:
    """Leerer Prefix ist erlaubt."""
    if value and not _ACCOUNT_NAME_RE.match(value):
        raise ValueError(f"Ungültiger Prefix: {value!r} (erlaubt: A-Z, a-z, 0-9, _ . -)")
    return value


def check_optional_principal(value: Optional[str]) -> Optional[str]:
    """Leer = nicht gelesen, sonst wie FilePermissions.owner/group."""
    if not value:
        return value
    return check_principal(value)


def check_optional_mode(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return check_mode(value)


# =============================================================================
# Enums
# =============================================================================

class SusLevel(IntEnum):
    """Verdachtsstufe — wird vom Operator gesetzt, nie von der Engine."""
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


# =============================================================================
# Create Model
# =============================================================================

class AccountCreate(BaseModel):
    """Input zum Anlegen eines Account-Datensatzes (nach erfolgreichem Backup)."""
    account_name: str = Field(..., min_length=1, max_length=64)
    prefix: str = Field(default="", max_length=32)
    backup_path: str = Field(..., min_length=1)

    # Beim Backup gelesene Berechtigungen (leer wenn nicht lesbar)
    file_owner: str = ""
    file_group: str = ""
    file_permissions: str = ""

    # Geräte-IDs
    user_id: Optional[str] = None
    ssaid: Optional[str] = None
    gaid: Optional[str] = None
    device_token: Optional[str] = None
    app_set_id: Optional[str] = None

    # Facebook-Verknüpfung (optional)
    has_facebook_link: bool = False
    fb_username: Optional[str] = Field(default=None, max_length=256)
    fb_password: Optional[str] = Field(default=None, max_length=256)
    fb_2fa: Optional[str] = Field(default=None, max_length=256)
    fb_temp_mail: Optional[str] = Field(default=None, max_length=256)

    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("account_name")
    @classmethod
    def validate_account_name(cls, v: str) -> str:
        return check_account_name(v)

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        return check_prefix(v)

    @field_validator("file_owner", "file_group")
    @classmethod
    def validate_principal(cls, v: str) -> str:
        return check_optional_principal(v)

    @field_validator("file_permissions")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        return check_optional_mode(v)


# =============================================================================
# Read Model (Full DB Response)
# =============================================================================

class AccountRead(BaseModel):
    """Vollständiger Account inkl. DB-Metadaten."""
    id: int
    account_name: str
    prefix: str = ""
    backup_path: str

    file_owner: str = ""
    file_group: str = ""
    file_permissions: str = ""

    user_id: Optional[str] = None
    ssaid: Optional[str] = None
    gaid: Optional[str] = None
    device_token: Optional[str] = None
    app_set_id: Optional[str] = None

    sus_level: SusLevel = SusLevel.NONE
    has_error: bool = False

    has_facebook_link: bool = False
    fb_username: Optional[str] = None
    fb_password: Optional[str] = None
    fb_2fa: Optional[str] = None
    fb_temp_mail: Optional[str] = None

    notes: Optional[str] = None

    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_played_at: Optional[str] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def full_name(self) -> str:
        return f"{self.prefix}{self.account_name}"

    @property
    def permissions(self) -> Optional[FilePermissions]:
        """Die gespeicherten Berechtigungen, oder None wenn beim Backup nicht lesbar."""
        if not (self.file_owner and self.file_group and self.file_permissions):
            return None
        return FilePermissions(
            owner=self.file_owner,
            group=self.file_group,
            mode=self.file_permissions,
        )


# =============================================================================
# Update Model (Partial)
# =============================================================================

class AccountUpdate(BaseModel):
    """Partial Update — nur gesetzte Felder werden geschrieben."""
    account_name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    sus_level: Optional[SusLevel] = None
    has_error: Optional[bool] = None
    has_facebook_link: Optional[bool] = None
    fb_username: Optional[str] = Field(default=None, max_length=256)
    fb_password: Optional[str] = Field(default=None, max_length=256)
    fb_2fa: Optional[str] = Field(default=None, max_length=256)
    fb_temp_mail: Optional[str] = Field(default=None, max_length=256)
    file_owner: Optional[str] = None
    file_group: Optional[str] = None
    file_permissions: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("account_name")
    @classmethod
    def validate_account_name(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else check_account_name(v)

    @field_validator("file_owner", "file_group")
    @classmethod
    def validate_principal(cls, v: Optional[str]) -> Optional[str]:
        return check_optional_principal(v)

    @field_validator("file_permissions")
    @classmethod
    def validate_mode(cls, v: Optional[str]) -> Optional[str]:
        return check_optional_mode(v)
