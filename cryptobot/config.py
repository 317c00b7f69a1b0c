from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent

WORKSPACE_PLACEHOLDER = "<workspace-id>"
DEFAULT_CONVERSATION_URL = "https://gateway.watsonplatform.net/conversation/api"
DEFAULT_PRICE_FEED_URL = "https://api.coinmarketcap.com/v1"
DEFAULT_AUDIT_DB = "car_logs"


class ConfigError(RuntimeError):
    """Raised when the process cannot start with the given environment."""


@dataclass(frozen=True)
class Settings:
    """Configuration container for upstream services, audit storage and limits."""
    workspace_id: str
    conversation_url: str
    conversation_username: str
    conversation_password: str
    discovery_url: str
    discovery_username: str
    discovery_password: str
    version_date: str
    environment_id: str
    collection_id: str
    price_feed_url: str
    http_timeout: float
    cloudant_url: Optional[str] = None
    cloudant_db: str = DEFAULT_AUDIT_DB
    audit_log_path: Optional[Path] = None
    log_user: Optional[str] = None
    log_pass: Optional[str] = None

    @property
    def workspace_configured(self) -> bool:
        return bool(self.workspace_id) and self.workspace_id != WORKSPACE_PLACEHOLDER

    @property
    def audit_enabled(self) -> bool:
        return bool(self.cloudant_url or self.audit_log_path)


def cloudant_url_from_vcap(raw: Optional[str]) -> Optional[str]:
    """Purpose: Extract the Cloudant URL from a Cloud Foundry VCAP_SERVICES blob.
    Inputs/Outputs: Input is the raw JSON string (or None); output is the URL or None.
    Side Effects / State: None; pure function.
    Dependencies: json.loads.
    Failure Modes: Malformed JSON or missing keys return None.
    If Removed: Bound Cloudant services are ignored and only CLOUDANT_URL is honored.
    Testing Notes: Feed a VCAP blob with and without the cloudantNoSQLDB entry.
    """
    if not raw:
        return None
    try:
        services = json.loads(raw)
    except json.JSONDecodeError:
        return None
    bindings = services.get("cloudantNoSQLDB") if isinstance(services, dict) else None
    if not bindings or not isinstance(bindings, list):
        return None
    credentials = bindings[0].get("credentials") if isinstance(bindings[0], dict) else None
    if not isinstance(credentials, dict):
        return None
    return credentials.get("url") or None


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables.
    Dependencies: Uses os.getenv and cloudant_url_from_vcap.
    Failure Modes: Invalid HTTP_TIMEOUT raises ValueError; audit logging without both
        LOG_USER and LOG_PASS raises ConfigError.
    If Removed: App cannot reach any upstream service and fails at startup.
    Testing Notes: Verify defaults, overrides, and the LOG_USER/LOG_PASS pairing rule.
    """
    # The bound Cloudant service wins over the plain environment variable.
    cloudant_url = cloudant_url_from_vcap(os.getenv("VCAP_SERVICES")) or os.getenv("CLOUDANT_URL") or None
    audit_path = os.getenv("AUDIT_LOG_PATH")

    settings = Settings(
        workspace_id=os.getenv("WORKSPACE_ID", WORKSPACE_PLACEHOLDER),
        conversation_url=os.getenv("CONVERSATION_URL", DEFAULT_CONVERSATION_URL).rstrip("/"),
        conversation_username=os.getenv("CONVERSATION_USERNAME", "<username>"),
        conversation_password=os.getenv("CONVERSATION_PASSWORD", "<password>"),
        discovery_url=(os.getenv("DISCOVERY_URL") or "").rstrip("/"),
        discovery_username=os.getenv("DISCOVERY_USERNAME", "<username>"),
        discovery_password=os.getenv("DISCOVERY_PASSWORD", "<password>"),
        version_date=os.getenv("VERSION_DATE", ""),
        environment_id=os.getenv("ENVIRONMENT_ID", ""),
        collection_id=os.getenv("COLLECTION_ID", ""),
        price_feed_url=os.getenv("PRICE_FEED_URL", DEFAULT_PRICE_FEED_URL).rstrip("/"),
        http_timeout=float(os.getenv("HTTP_TIMEOUT", "10")),
        cloudant_url=cloudant_url,
        cloudant_db=os.getenv("CLOUDANT_DB", DEFAULT_AUDIT_DB),
        audit_log_path=Path(audit_path) if audit_path else None,
        log_user=os.getenv("LOG_USER") or None,
        log_pass=os.getenv("LOG_PASS") or None,
    )
    if settings.audit_enabled and not (settings.log_user and settings.log_pass):
        raise ConfigError("LOG_USER OR LOG_PASS not defined, both required to enable logging!")
    return settings
