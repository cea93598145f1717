"""
Upload Orchestrator.

Responsibilities:
- Load the source candidate from Gem.
- Resolve source attribution, credited-to user and interview stage.
- Find or create the Ashby candidate and its application for the job.
- Align an existing application's source, credited user and stage.

Non-Responsibilities:
- No write-safety policy (every mutation goes through the gate).
- No rollback. Records created before a failure are left in place.

Invariant:
Re-running an upload for the same candidate and job creates nothing new;
it only reconciles the existing application.
"""

from typing import Any, Dict, List, Optional

from .clients.common import omit_empty
from .config import Settings
from .errors import ValidationError
from .logger import StructuredLogger, get_logger
from .matching import select_existing_candidate, source_profile_from_gem
from .models import SourceProfile, StageSelection, UploadResult, WriteAudit, build_profile_url
from .safety import WriteSafetyGate
from .schema import validate_upload_request
from .sources import list_sources, match_source
from .stages import pick_stage
from .users import CreditedUserResolver


def _nested_id(record: Dict[str, Any], *keys: str) -> str:
    """Read ``record[k]["id"]`` or ``record[k + "Id"]`` for the first key present."""
    for key in keys:
        value = record.get(key)
        if isinstance(value, dict) and value.get("id"):
            return str(value["id"])
        flat = record.get(f"{key}Id")
        if flat:
            return str(flat)
    return ""


def _results(response: Dict[str, Any]) -> Any:
    return response.get("results") if isinstance(response, dict) else None


class UploadOrchestrator:
    def __init__(
        self,
        ashby,
        gem,
        settings: Settings,
        users: CreditedUserResolver,
        gate: WriteSafetyGate,
        logger: Optional[StructuredLogger] = None,
    ):
        self.ashby = ashby
        self.gem = gem
        self.settings = settings
        self.users = users
        self.gate = gate
        self.logger = logger or get_logger()

    async def upload(
        self,
        gem_candidate_id: str,
        job_id: str,
        audit: Optional[WriteAudit] = None,
        write_confirmation: str = "",
    ) -> UploadResult:
        """
        Create or sync an Ashby application for a Gem candidate.

        Args:
            gem_candidate_id: Gem id of the source candidate
            job_id: Ashby job id to apply the candidate to
            audit: Correlation ids for every upstream call
            write_confirmation: Token for the write-safety gate

        Returns:
            UploadResult describing what was found, created and updated

        Raises:
            ValidationError: On missing inputs or an unnamed source candidate
            WriteBlockedError: If a required write is refused
            AshbyApiError, GemApiError: On the first failing upstream call
        """
        errors = validate_upload_request({"gem_candidate_id": gem_candidate_id, "job_id": job_id})
        if errors:
            raise ValidationError("; ".join(errors))
        gem_candidate_id = gem_candidate_id.strip()
        job_id = job_id.strip()
        audit = audit or WriteAudit.new(route="upload")
        confirm = write_confirmation

        record = await self.gem.get_candidate(gem_candidate_id, audit)
        profile = source_profile_from_gem(gem_candidate_id, record)
        if not profile.name:
            raise ValidationError("Source candidate has no name.")

        sources = await list_sources(self.ashby, audit)
        source, source_strategy = match_source(sources, self.settings.source_names)
        source_id = str(source["id"]) if source else ""

        credited_id = await self.users.resolve(audit)
        stage = await self.select_stage(job_id, audit)

        self.logger.info(
            "upload.resolved",
            gem_candidate_id=gem_candidate_id,
            job_id=job_id,
            source_id=source_id,
            source_strategy=source_strategy,
            credited_to_user_id=credited_id,
            stage_id=stage.stage_id,
            stage_strategy=stage.strategy,
            **audit.as_log_context(),
        )

        candidate = await self.find_existing_candidate(profile, audit)
        candidate_created = candidate is None
        if candidate is None:
            candidate = await self.create_candidate(profile, source_id, credited_id, audit, confirm)
        candidate_id = str(candidate.get("id") or "")

        application = await self.find_application(candidate, job_id, audit)
        application_created = application is None
        updates: List[str] = []
        if application is None:
            response = await self.ashby.call(
                "application.create",
                omit_empty({
                    "candidateId": candidate_id,
                    "jobId": job_id,
                    "sourceId": source_id,
                    "creditedToUserId": credited_id,
                    "interviewStageId": stage.stage_id,
                }),
                audit,
                write_confirmation=confirm,
            )
            application = _results(response) or {}
        else:
            updates = await self.sync_application(application, source_id, credited_id, stage, audit, confirm)

        application_id = str(application.get("id") or "")
        refreshed = await self.ashby.call("application.info", {"applicationId": application_id}, audit)
        application = _results(refreshed) or application
        profile_url = await self.candidate_profile_url(candidate, audit)

        result = UploadResult(
            candidate_id=candidate_id,
            candidate_created=candidate_created,
            application_id=application_id,
            application_created=application_created,
            candidate_profile_url=profile_url,
            source_id=source_id,
            credited_to_user_id=credited_id,
            stage=stage,
            updates=updates,
            application=application,
        )
        self.logger.info(
            "upload.complete",
            candidate_id=candidate_id,
            candidate_created=candidate_created,
            application_id=application_id,
            application_created=application_created,
            updates=updates,
            **audit.as_log_context(),
        )
        return result

    async def select_stage(self, job_id: str, audit: WriteAudit) -> StageSelection:
        response = await self.ashby.call("jobInterviewPlan.info", {"jobId": job_id}, audit)
        plan = _results(response) or {}
        stages = plan.get("stages") if isinstance(plan, dict) else None
        return pick_stage(stages or [])

    async def find_existing_candidate(self, profile: SourceProfile, audit: WriteAudit) -> Optional[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        seen = set()
        queries = []
        if profile.email:
            queries.append({"email": profile.email})
        if profile.name:
            queries.append({"name": profile.name})
        for query in queries:
            response = await self.ashby.call("candidate.search", query, audit)
            for row in _results(response) or []:
                if isinstance(row, dict) and row.get("id") and row["id"] not in seen:
                    seen.add(row["id"])
                    rows.append(row)
        return select_existing_candidate(profile, rows)

    async def create_candidate(
        self,
        profile: SourceProfile,
        source_id: str,
        credited_id: str,
        audit: WriteAudit,
        confirm: str,
    ) -> Dict[str, Any]:
        payload = omit_empty({
            "name": profile.name,
            "email": profile.email,
            "phoneNumber": profile.phone,
            "linkedInUrl": profile.linkedin_url,
            "sourceId": source_id,
            "creditedToUserId": credited_id,
        })
        response = await self.ashby.call("candidate.create", payload, audit, write_confirmation=confirm)
        return _results(response) or {}

    async def find_application(
        self, candidate: Dict[str, Any], job_id: str, audit: WriteAudit
    ) -> Optional[Dict[str, Any]]:
        for application_id in candidate.get("applicationIds") or []:
            response = await self.ashby.call("application.info", {"applicationId": application_id}, audit)
            application = _results(response) or {}
            if _nested_id(application, "job") == job_id:
                return application
        return None

    async def sync_application(
        self,
        application: Dict[str, Any],
        source_id: str,
        credited_id: str,
        stage: StageSelection,
        audit: WriteAudit,
        confirm: str,
    ) -> List[str]:
        """Bring an existing application in line; returns the fields changed."""
        application_id = str(application.get("id") or "")
        updates: List[str] = []

        if source_id and _nested_id(application, "source") != source_id:
            await self.ashby.call(
                "application.changeSource",
                {"applicationId": application_id, "sourceId": source_id},
                audit,
                write_confirmation=confirm,
            )
            updates.append("source")

        if credited_id and _nested_id(application, "creditedToUser") != credited_id:
            if self.gate.is_allowlisted("application.update"):
                await self.ashby.call(
                    "application.update",
                    {"applicationId": application_id, "creditedToUserId": credited_id},
                    audit,
                    write_confirmation=confirm,
                )
                updates.append("credited_to_user")
            else:
                self.logger.info(
                    "upload.credited_user.skipped",
                    reason="application.update not allowlisted",
                    application_id=application_id,
                )

        if stage.stage_id and _nested_id(application, "currentInterviewStage") != stage.stage_id:
            await self.ashby.call(
                "application.changeStage",
                {"applicationId": application_id, "interviewStageId": stage.stage_id},
                audit,
                write_confirmation=confirm,
            )
            updates.append("stage")

        return updates

    async def candidate_profile_url(self, candidate: Dict[str, Any], audit: WriteAudit) -> str:
        candidate_id = str(candidate.get("id") or "")
        raw = candidate.get("profileUrl")
        if not raw and candidate_id:
            response = await self.ashby.call("candidate.info", {"id": candidate_id}, audit)
            fetched = _results(response) or {}
            raw = fetched.get("profileUrl")
        return build_profile_url(raw, candidate_id, self.settings.ashby_app_base_url)
