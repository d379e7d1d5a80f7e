"""
MGO Manager: Zentrale Konfiguration
=====================================

Single Source of Truth für alle Konstanten, Pfade und Timeouts.
Alle Werte können per Umgebungsvariable überschrieben werden (MGO_*).
"""

import os
from pathlib import Path
from zoneinfo import ZoneInfo

# =============================================================================
# 0. Zeitzone (Europe/Berlin, CET/CEST)
# =============================================================================

LOCAL_TZ = ZoneInfo(os.environ.get("MGO_TIMEZONE", "Europe/Berlin"))

# =============================================================================
# 0b. Execution Mode: Local (On-Device/Termux) oder ADB (Laptop+USB)
# =============================================================================
# "local" = Server läuft direkt auf dem Gerät, Befehle via `su -c`
# "adb"   = Host steuert das Gerät über USB: `adb shell su -c "..."`
EXECUTION_MODE: str = os.environ.get("MGO_MODE", "local")


def create_shell_client():
    """Factory: Erstellt den richtigen Shell-Client basierend auf EXECUTION_MODE.

    Verwendung überall statt direktem Client-Aufruf:
        from mgomanager.config import create_shell_client
        shell = create_shell_client()
    """
    if EXECUTION_MODE == "adb":
        from mgomanager.shell.client import ADBShellClient
        return ADBShellClient()
    else:
        from mgomanager.shell.local_client import LocalShellClient
        return LocalShellClient()


# =============================================================================
# 1. Projekt-Pfade (Host-Seite)
# =============================================================================

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# SQLite Datenbank (Accounts + Logs)
DATABASE_PATH = Path(os.environ.get("MGO_DATABASE_PATH", PROJECT_ROOT / "mgo_manager.db"))

# Log-Datei (RotatingFileHandler in main.py)
LOG_FILE = Path(os.environ.get("MGO_LOG_FILE", PROJECT_ROOT / "mgo.log"))

# =============================================================================
# 2. Ziel-App (Android-Seite, via Root)
# =============================================================================

MGO_PACKAGE = "com.scopely.monopolygo"
MGO_DATA_PATH = f"/data/data/{MGO_PACKAGE}"
MGO_FILES_PATH = f"{MGO_DATA_PATH}/files"
MGO_DISK_CACHE_PATH = f"{MGO_FILES_PATH}/DiskBasedCacheDirectory"
MGO_PREFS_PATH = f"{MGO_DATA_PATH}/shared_prefs"

# SSAID-Datenbank des Systems (Android ID pro App)
SSAID_PATH = "/data/system/users/0/settings_ssaid.xml"

# Launcher-Intent für den App-Start nach einem Restore
MGO_LAUNCH_COMMAND = f"monkey -p {MGO_PACKAGE} -c android.intent.category.LAUNCHER 1"

# =============================================================================
# 3. Backup-Speicher (Geräte-Storage)
# =============================================================================

# Wurzelverzeichnis aller Account-Backups: <root>/<prefix><name>/
BACKUP_ROOT: str = os.environ.get("MGO_BACKUP_ROOT", "/storage/emulated/0/mgo/backups/")

# Standard-Präfix für neue Accounts (z.B. "MGO_" → MGO_Hauptaccount)
DEFAULT_PREFIX: str = os.environ.get("MGO_DEFAULT_PREFIX", "MGO_")

# Ordner im Backup-Root, der vom Export ausgenommen wird
ARCHIVE_DIR_NAME = "archive"

# Export-Archive (mgo_export_<timestamp>.zip)
EXPORT_DIR = Path(os.environ.get("MGO_EXPORT_DIR", "/storage/emulated/0/mgo/exports/"))
EXPORT_FILE_PREFIX = "mgo_export_"
EXPORT_DB_FOLDER = "database"
EXPORT_BACKUPS_FOLDER = "backups"
EXPORT_ACCOUNTS_JSON = "accounts.json"

# =============================================================================
# 4. SSH-Spiegel (Optional)
# =============================================================================
# Wenn MGO_SSH_ENABLED=1 und Host + Credential gesetzt sind, können Export-Archive
# auf einen SSH-Server gespiegelt werden. Lokal bleibt primär.

SSH_ENABLED: bool = os.environ.get("MGO_SSH_ENABLED", "0").lower() in ("1", "true", "yes")
SSH_HOST: str = os.environ.get("MGO_SSH_HOST", "")
SSH_PORT: int = int(os.environ.get("MGO_SSH_PORT", "22"))
SSH_USERNAME: str = os.environ.get("MGO_SSH_USERNAME", "")
SSH_PASSWORD: str = os.environ.get("MGO_SSH_PASSWORD", "")
SSH_KEY_PATH: str = os.environ.get("MGO_SSH_KEY_PATH", "")
SSH_AUTH_METHOD: str = os.environ.get("MGO_SSH_AUTH_METHOD", "try_both")
SSH_REMOTE_PATH: str = os.environ.get("MGO_SSH_REMOTE_PATH", "/home/mgo/exports/")
SSH_AUTO_UPLOAD: bool = os.environ.get("MGO_SSH_AUTO_UPLOAD", "0").lower() in ("1", "true", "yes")


# =============================================================================
# 5. Timing
# =============================================================================

class TIMING:
    """Timeouts und Retry-Parameter."""
    ROOT_COMMAND_TIMEOUT = int(os.environ.get("MGO_COMMAND_TIMEOUT", "30"))
    PERMISSION_READ_RETRIES = 3         # Berechtigungen lesen: 3 Versuche
    PERMISSION_RETRY_BASE_DELAY = 0.5   # Backoff: 0.5s, 1s, 2s
    SSH_CONNECT_TIMEOUT = 15            # Verbindungsaufbau + Auth


# =============================================================================
# 6. FastAPI Server
# =============================================================================

API_HOST = os.environ.get("MGO_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("MGO_API_PORT", "8000"))
API_TITLE = "MGO Manager"
API_VERSION = "1.0.0"
