"""
Process configuration, read once at start from the environment.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Mapping, Optional


DEFAULT_ASHBY_API_BASE_URL = "https://api.ashbyhq.com"
DEFAULT_ASHBY_APP_BASE_URL = "https://app.ashbyhq.com"
DEFAULT_GEM_API_BASE_URL = "https://api.gem.com"
DEFAULT_WRITE_CONFIRMATION = "I_UNDERSTAND_THIS_WRITES_TO_ASHBY"
DEFAULT_WRITE_ALLOWED_METHODS = (
    "candidate.create",
    "candidate.addProject",
    "customField.setValue",
    "customField.setValues",
    "candidate.createNote",
    "application.create",
    "application.changeStage",
    "application.changeSource",
)
DEFAULT_SOURCE_NAMES = ("sourced: gem", "gem")
DEFAULT_INDEX_SCAN_MAX = 20000
DEFAULT_INDEX_TTL_SECONDS = 600
MAX_PAGE_SIZE = 100

_TRUTHY = re.compile(r"^(1|true|yes|on)$", re.IGNORECASE)
_FALSY = re.compile(r"^(0|false|no|off)$", re.IGNORECASE)


def _env_str(env: Mapping[str, str], name: str, default: str = "") -> str:
    return str(env.get(name, default) or default).strip()


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = str(env.get(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(env: Mapping[str, str], name: str, default: tuple) -> List[str]:
    raw = str(env.get(name, "") or "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    ashby_api_key: str = ""
    ashby_api_base_url: str = DEFAULT_ASHBY_API_BASE_URL
    ashby_app_base_url: str = DEFAULT_ASHBY_APP_BASE_URL
    gem_api_key: str = ""
    gem_api_base_url: str = DEFAULT_GEM_API_BASE_URL

    write_enabled: bool = False
    write_require_confirmation: bool = True
    write_confirmation_token: str = ""
    write_allowed_methods: FrozenSet[str] = field(
        default_factory=lambda: frozenset(DEFAULT_WRITE_ALLOWED_METHODS)
    )

    index_scan_max: int = DEFAULT_INDEX_SCAN_MAX
    index_ttl_seconds: int = DEFAULT_INDEX_TTL_SECONDS
    index_page_size: int = MAX_PAGE_SIZE

    credited_to_user_id: str = ""
    credited_to_user_email: str = ""
    source_names: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_NAMES))

    request_timeout_seconds: int = 0
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        page_size = _env_int(env, "ASHBY_CANDIDATE_INDEX_PAGE_SIZE", MAX_PAGE_SIZE)
        log_dir = _env_str(env, "LOG_DIR")
        return cls(
            ashby_api_key=_env_str(env, "ASHBY_API_KEY"),
            ashby_api_base_url=_env_str(env, "ASHBY_API_BASE_URL", DEFAULT_ASHBY_API_BASE_URL).rstrip("/"),
            ashby_app_base_url=_env_str(env, "ASHBY_APP_BASE_URL", DEFAULT_ASHBY_APP_BASE_URL).rstrip("/"),
            gem_api_key=_env_str(env, "GEM_API_KEY"),
            gem_api_base_url=_env_str(env, "GEM_API_BASE_URL", DEFAULT_GEM_API_BASE_URL).rstrip("/"),
            write_enabled=bool(_TRUTHY.match(_env_str(env, "ASHBY_WRITE_ENABLED", "false"))),
            write_require_confirmation=not _FALSY.match(
                _env_str(env, "ASHBY_WRITE_REQUIRE_CONFIRMATION", "true")
            ),
            write_confirmation_token=_env_str(env, "ASHBY_WRITE_CONFIRMATION_TOKEN"),
            write_allowed_methods=frozenset(
                _env_list(env, "ASHBY_WRITE_ALLOWED_METHODS", DEFAULT_WRITE_ALLOWED_METHODS)
            ),
            index_scan_max=max(1, _env_int(env, "ASHBY_CANDIDATE_INDEX_SCAN_MAX", DEFAULT_INDEX_SCAN_MAX)),
            index_ttl_seconds=max(0, _env_int(env, "ASHBY_CANDIDATE_INDEX_TTL_SECONDS", DEFAULT_INDEX_TTL_SECONDS)),
            index_page_size=max(1, min(page_size, MAX_PAGE_SIZE)),
            credited_to_user_id=_env_str(env, "ASHBY_CREDITED_TO_USER_ID"),
            credited_to_user_email=_env_str(env, "ASHBY_CREDITED_TO_USER_EMAIL"),
            source_names=_env_list(env, "ASHBY_SOURCE_NAMES", DEFAULT_SOURCE_NAMES),
            request_timeout_seconds=max(0, _env_int(env, "ASHBY_REQUEST_TIMEOUT_SECONDS", 0)),
            log_level=_env_str(env, "LOG_LEVEL", "INFO").upper(),
            log_dir=Path(log_dir) if log_dir else None,
        )

    @property
    def expected_confirmation(self) -> str:
        return self.write_confirmation_token or DEFAULT_WRITE_CONFIRMATION

    def write_policy_summary(self) -> str:
        return (
            f"Ashby write safety: enabled={self.write_enabled} "
            f"requireConfirmation={self.write_require_confirmation} "
            f"allowlistedMethods={','.join(sorted(self.write_allowed_methods))}"
        )
