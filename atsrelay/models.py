from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from .normalize import iso_from_ms, normalize_linkedin_key, to_epoch_ms


@dataclass
class WriteAudit:
    request_id: str = ""
    route: str = ""
    run_id: str = ""
    action_id: str = ""

    @classmethod
    def new(cls, route: str = "", run_id: str = "", action_id: str = "") -> "WriteAudit":
        return cls(request_id=str(uuid.uuid4()), route=route, run_id=run_id, action_id=action_id)

    def as_log_context(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v}


@dataclass
class CandidateSummary:
    id: str
    name: str = ""
    profile_url: str = ""
    linkedin_urls: List[str] = field(default_factory=list)
    linkedin_keys: List[str] = field(default_factory=list)
    updated_at_ms: int = 0
    updated_at: str = ""
    created_at: str = ""
    email: str = ""

    @classmethod
    def from_api(cls, row: Any, app_base_url: str) -> Optional["CandidateSummary"]:
        """Project one Ashby candidate row. Rows without an id are dropped."""
        if not isinstance(row, dict):
            return None
        candidate_id = str(row.get("id") or "").strip()
        if not candidate_id:
            return None

        urls: List[str] = []
        raw_urls = [row.get("linkedInUrl")]
        for link in row.get("socialLinks") or []:
            if isinstance(link, dict):
                raw_urls.append(link.get("url"))
        for raw in raw_urls:
            url = str(raw or "").strip()
            if url and url not in urls:
                urls.append(url)

        keys: List[str] = []
        for url in urls:
            key = normalize_linkedin_key(url)
            if key and key not in keys:
                keys.append(key)

        updated_raw = row.get("updatedAt") or row.get("createdAt") or ""
        updated_ms = to_epoch_ms(updated_raw)

        return cls(
            id=candidate_id,
            name=str(row.get("name") or "").strip(),
            profile_url=build_profile_url(row.get("profileUrl"), candidate_id, app_base_url),
            linkedin_urls=urls,
            linkedin_keys=keys,
            updated_at_ms=updated_ms,
            updated_at=iso_from_ms(updated_ms),
            created_at=str(row.get("createdAt") or ""),
            email=_candidate_email(row),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_profile_url(raw: Any, candidate_id: str, app_base_url: str) -> str:
    base = str(app_base_url or "").rstrip("/")
    value = str(raw or "").strip()
    if value.startswith("http://") or value.startswith("https://"):
        return value
    if value:
        return f"{base}/{value.lstrip('/')}"
    if candidate_id:
        return f"{base}/candidates/{candidate_id}"
    return ""


def _candidate_email(row: Dict[str, Any]) -> str:
    primary = row.get("primaryEmailAddress")
    if isinstance(primary, dict) and primary.get("value"):
        return str(primary["value"]).strip()
    for entry in row.get("emailAddresses") or []:
        if isinstance(entry, dict) and entry.get("value"):
            return str(entry["value"]).strip()
    return str(row.get("email") or "").strip()


@dataclass(frozen=True)
class CandidateIndex:
    """Snapshot of the candidate index. Replaced whole, never mutated."""

    built_at_ms: int = 0
    built_at: str = ""
    scanned_count: int = 0
    is_complete: bool = False
    sync_token: str = ""
    candidates_by_id: Dict[str, CandidateSummary] = field(default_factory=dict)
    linkedin_to_candidate_ids: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def candidate_count(self) -> int:
        return len(self.candidates_by_id)

    @property
    def has_been_built(self) -> bool:
        return self.built_at_ms > 0

    @property
    def can_sync_incrementally(self) -> bool:
        return self.candidate_count > 0 and bool(self.sync_token)

    def age_ms(self, now_ms: int) -> Optional[int]:
        if not self.built_at_ms:
            return None
        return max(0, now_ms - self.built_at_ms)

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        age = self.age_ms(now_ms)
        return age is not None and age <= ttl_ms

    def metadata(self, now_ms: int, ttl_ms: int, refresh_in_flight: bool = False) -> Dict[str, Any]:
        return {
            "built_at": self.built_at,
            "age_ms": self.age_ms(now_ms),
            "is_fresh": self.is_fresh(now_ms, ttl_ms),
            "is_complete": self.is_complete,
            "scanned_count": self.scanned_count,
            "candidate_count": self.candidate_count,
            "linkedin_key_count": len(self.linkedin_to_candidate_ids),
            "supports_incremental_sync": bool(self.sync_token),
            "refresh_in_flight": refresh_in_flight,
        }


@dataclass
class StageSelection:
    stage: Optional[Dict[str, Any]]
    strategy: str

    @property
    def stage_id(self) -> str:
        if not self.stage:
            return ""
        return str(self.stage.get("id") or "")

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "strategy": self.strategy}


# Email shapes observed on Gem candidate records.

@dataclass
class DirectEmail:
    value: str


@dataclass
class FlaggedEmailList:
    entries: List[Dict[str, Any]]


@dataclass
class PlainEmailList:
    field_name: str
    values: List[Any]


EmailShape = Union[DirectEmail, FlaggedEmailList, PlainEmailList]


@dataclass
class SourceProfile:
    """Canonical fields of the source (Gem) candidate being uploaded."""

    gem_candidate_id: str
    name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    linkedin_url: str = ""


@dataclass
class UploadResult:
    candidate_id: str
    candidate_created: bool
    application_id: str
    application_created: bool
    candidate_profile_url: str = ""
    source_id: str = ""
    credited_to_user_id: str = ""
    stage: Optional[StageSelection] = None
    updates: List[str] = field(default_factory=list)
    application: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["stage"] = self.stage.to_dict() if self.stage else None
        return data
