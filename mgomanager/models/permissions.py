"""
FilePermissions — Eigentümer, Gruppe und Modus eines Pfads
===========================================================

Wird beim Backup vom Live-Verzeichnis gelesen und beim Restore
wieder angewendet (chown -R / chmod -R). Unveränderlich.

Modus-Format: normalisierter Oktal-String ohne führende Nullen
("0755" → "755", "0000" → "0", niemals "").
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

_OCTAL_RE = re.compile(r"^[0-7]{1,4}$")
# Owner/Group landen ungequotet in `chown -R owner:group`
_PRINCIPAL_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def normalize_mode(raw: str) -> str:
    """Entfernt führende Nullen, der All-Null-Modus bleibt "0"."""
    return raw.lstrip("0") or "0"


def check_principal(value: str) -> str:
    """Owner/Group-Name: nur Buchstaben, Ziffern, '_', '.', '-'."""
    value = value.strip()
    if not _PRINCIPAL_RE.match(value):
        raise ValueError(f"Ungültiger Owner/Group-Name: {value!r}")
    return value


def check_mode(value: str) -> str:
    """Oktaler Modus (max. 4 Stellen), normalisiert."""
    value = value.strip()
    if not _OCTAL_RE.match(value):
        raise ValueError(f"Modus muss oktal sein (max. 4 Stellen): {value!r}")
    return normalize_mode(value)


class FilePermissions(BaseModel):
    """Owner/Group/Mode-Triple eines Dateisystem-Pfads."""

    model_config = {"frozen": True}

    owner: str = Field(..., min_length=1, description="z.B. u0_a123")
    group: str = Field(..., min_length=1, description="z.B. u0_a123")
    mode: str = Field(..., description="Oktal, normalisiert (z.B. 771)")

    @field_validator("owner", "group")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return check_principal(v)

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        return check_mode(v)

    def __str__(self) -> str:
        return f"{self.owner}:{self.group} {self.mode}"
