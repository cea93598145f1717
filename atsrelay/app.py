import argparse
import asyncio
import json
import sys
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TextIO

from . import __version__
from .clients.ashby import AshbyClient
from .clients.common import summarize_for_log
from .clients.gem import GemClient
from .config import Settings
from .env import load_env
from .errors import RelayError, UpstreamError, ValidationError, WriteBlockedError
from .index import CandidateIndexBuilder, IndexStore
from .logger import StructuredLogger, get_logger
from .models import WriteAudit
from .resolver import LookupResolver
from .safety import WriteSafetyGate
from .scheduler import IndexRefreshScheduler
from .schema import validate_lookup_request, validate_upload_request
from .upload import UploadOrchestrator
from .users import CreditedUserResolver


Operation = Callable[[Dict[str, Any], WriteAudit], Awaitable[Dict[str, Any]]]


class Relay:
    """One per process: owns the index store and wires every component."""

    def __init__(
        self,
        settings: Settings,
        logger: Optional[StructuredLogger] = None,
        ashby: Optional[AshbyClient] = None,
        gem: Optional[GemClient] = None,
        store: Optional[IndexStore] = None,
    ):
        self.settings = settings
        self.logger = logger or get_logger(level=settings.log_level, log_dir=settings.log_dir)
        self.gate = WriteSafetyGate(settings, self.logger)
        self.ashby = ashby or AshbyClient(settings, self.gate, self.logger)
        self.gem = gem or GemClient(settings, self.logger)
        self.store = store or IndexStore()
        self.builder = CandidateIndexBuilder(self.ashby, self.store, settings, self.logger)
        self.scheduler = IndexRefreshScheduler(self.builder, self.store, settings, self.logger)
        self.resolver = LookupResolver(self.ashby, self.scheduler, self.logger)
        self.users = CreditedUserResolver(self.ashby, settings, self.logger)
        self.uploader = UploadOrchestrator(self.ashby, self.gem, settings, self.users, self.gate, self.logger)

    def log_write_policy(self) -> None:
        self.logger.info(self.settings.write_policy_summary())

    def operations(self) -> Dict[str, Operation]:
        return {
            "lookup": self.lookup,
            "refresh-index": self.refresh_index,
            "upload": self.upload,
            "write-policy": self.write_policy,
        }

    async def lookup(self, request: Dict[str, Any], audit: WriteAudit) -> Dict[str, Any]:
        errors = validate_lookup_request(request)
        if errors:
            raise ValidationError("; ".join(errors))
        return await self.resolver.resolve_by_linkedin(
            linkedin_url=request.get("linkedin_url"),
            linkedin_handle=request.get("linkedin_handle"),
            profile_name=request.get("profile_name"),
            audit=audit,
            force_refresh=bool(request.get("force_refresh")),
        )

    async def refresh_index(self, request: Dict[str, Any], audit: WriteAudit) -> Dict[str, Any]:
        index = await self.scheduler.ensure_fresh(audit, force_refresh=True, force_full=bool(request.get("full")))
        return self.scheduler.metadata(index)

    async def upload(self, request: Dict[str, Any], audit: WriteAudit) -> Dict[str, Any]:
        errors = validate_upload_request(request)
        if errors:
            raise ValidationError("; ".join(errors))
        result = await self.uploader.upload(
            request["gem_candidate_id"],
            request["job_id"],
            audit=audit,
            write_confirmation=request.get("write_confirmation") or request.get("confirmation") or "",
        )
        return result.to_dict()

    async def write_policy(self, request: Dict[str, Any], audit: WriteAudit) -> Dict[str, Any]:
        s = self.settings
        return {
            "write_enabled": s.write_enabled,
            "require_confirmation": s.write_require_confirmation,
            "confirmation_token_configured": bool(s.write_confirmation_token),
            "allowlisted_methods": sorted(s.write_allowed_methods),
        }


def error_response(error: RelayError, request_id: str) -> Dict[str, Any]:
    response: Dict[str, Any] = {"ok": False, "error": str(error), "request_id": request_id}
    if isinstance(error, WriteBlockedError):
        response.update(status=403, reason=error.reason, method=error.method)
    elif isinstance(error, UpstreamError):
        response.update(status=error.status, details=error.data)
    else:
        response["status"] = 400
    return response


async def handle_request(relay: Relay, line: str) -> Dict[str, Any]:
    """
    Answer one JSON request line in serve mode.

    The request is an object with an ``op`` (lookup, refresh-index, upload,
    write-policy), optional ``run_id`` / ``action_id`` and the operation's
    fields. Relay errors become ``{"ok": false, ...}`` responses.
    """
    try:
        body = json.loads(line)
    except ValueError:
        return {"ok": False, "error": "Request is not valid JSON.", "status": 400}
    if not isinstance(body, dict):
        return {"ok": False, "error": "Request must be a JSON object.", "status": 400}

    op = str(body.get("op") or "")
    audit = WriteAudit.new(
        route=op,
        run_id=str(body.get("run_id") or ""),
        action_id=str(body.get("action_id") or ""),
    )
    operation = relay.operations().get(op)
    if operation is None:
        relay.logger.warning("request.unknown_op", op=op, **audit.as_log_context())
        return {"ok": False, "error": f"Unknown op: {op}", "status": 404, "request_id": audit.request_id}

    started = time.monotonic()
    relay.logger.info("request.received", request=body, **audit.as_log_context())
    try:
        result = await operation(body, audit)
    except RelayError as e:
        response = error_response(e, audit.request_id)
        relay.logger.error(
            "request.failed",
            detail=str(e),
            status=response["status"],
            duration_ms=int((time.monotonic() - started) * 1000),
            **audit.as_log_context(),
        )
        return response

    relay.logger.info(
        "request.completed",
        duration_ms=int((time.monotonic() - started) * 1000),
        summary=summarize_for_log(result),
        **audit.as_log_context(),
    )
    return {"ok": True, "data": result, "request_id": audit.request_id}


async def serve(relay: Relay, reader: TextIO, writer: TextIO) -> int:
    """
    Answer JSON-line requests from ``reader`` until end of input.

    One Relay and one event loop serve every request, so the candidate
    index, its TTL and the in-flight refresh are shared between them.
    Background refreshes keep running between requests and are drained
    before returning.

    Returns:
        Number of requests answered
    """
    handled = 0
    while True:
        line = await asyncio.to_thread(reader.readline)
        if not line:
            break
        if not line.strip():
            continue
        response = await handle_request(relay, line)
        writer.write(json.dumps(response, default=str) + "\n")
        writer.flush()
        handled += 1
    await relay.scheduler.wait_idle()
    return handled


async def run_lookup(relay: Relay, args: argparse.Namespace) -> dict:
    request = {
        "linkedin_url": args.linkedin_url,
        "linkedin_handle": args.handle,
        "profile_name": args.name,
        "force_refresh": args.force_refresh,
    }
    audit = WriteAudit.new(route="lookup", run_id=args.run_id or "")
    result = await relay.lookup(request, audit)
    # A lookup may have started a background refresh; finish it before exit.
    await relay.scheduler.wait_idle()
    return result


async def run_refresh(relay: Relay, args: argparse.Namespace) -> dict:
    audit = WriteAudit.new(route="refresh-index", run_id=args.run_id or "")
    return await relay.refresh_index({"full": args.full}, audit)


async def run_upload(relay: Relay, args: argparse.Namespace) -> dict:
    audit = WriteAudit.new(route="upload", run_id=args.run_id or "", action_id=args.action_id or "")
    request = {
        "gem_candidate_id": args.gem_candidate_id,
        "job_id": args.job_id,
        "write_confirmation": args.confirm or "",
    }
    return await relay.upload(request, audit)


def cmd_lookup(relay: Relay, args: argparse.Namespace) -> dict:
    return asyncio.run(run_lookup(relay, args))


def cmd_refresh_index(relay: Relay, args: argparse.Namespace) -> dict:
    return asyncio.run(run_refresh(relay, args))


def cmd_upload(relay: Relay, args: argparse.Namespace) -> dict:
    return asyncio.run(run_upload(relay, args))


def cmd_write_policy(relay: Relay, args: argparse.Namespace) -> dict:
    return asyncio.run(relay.write_policy({}, WriteAudit.new(route="write-policy")))


def cmd_serve(relay: Relay, args: argparse.Namespace) -> dict:
    handled = asyncio.run(serve(relay, sys.stdin, sys.stdout))
    return {"requests_handled": handled}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="atsrelay", description="LinkedIn to Ashby relay")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--run-id", help="Correlation id attached to every log line")

    subparsers = parser.add_subparsers(dest="command")
    lk = subparsers.add_parser("lookup", help="Resolve a LinkedIn profile to an Ashby candidate")
    lk.add_argument("--linkedin-url", help="LinkedIn profile URL")
    lk.add_argument("--handle", help="LinkedIn handle (e.g. jane-doe)")
    lk.add_argument("--name", help="Profile display name, used for the name-search fallback")
    lk.add_argument("--force-refresh", action="store_true", help="Refresh the candidate index first")
    lk.set_defaults(func=cmd_lookup)

    rf = subparsers.add_parser("refresh-index", help="Refresh the candidate index and print its metadata")
    rf.add_argument("--full", action="store_true", help="Full resync instead of incremental")
    rf.set_defaults(func=cmd_refresh_index)

    up = subparsers.add_parser("upload", help="Create or sync an Ashby application for a Gem candidate")
    up.add_argument("--gem-candidate-id", required=True, help="Gem candidate id")
    up.add_argument("--job-id", required=True, help="Ashby job id")
    up.add_argument("--confirm", help="Write confirmation token")
    up.add_argument("--action-id", help="Action id for audit logs")
    up.set_defaults(func=cmd_upload)

    wp = subparsers.add_parser("write-policy", help="Show the Ashby write-safety configuration")
    wp.set_defaults(func=cmd_write_policy)

    sv = subparsers.add_parser("serve", help="Answer JSON-line requests on stdin, keeping the index warm")
    sv.set_defaults(func=cmd_serve)
    return parser


def main(argv=None):
    # Load .env if present (ASHBY_API_KEY, GEM_API_KEY, write-safety flags)
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        return

    settings = Settings.from_env()
    # serve mode answers on stdout, so console logs go to stderr
    console = sys.stderr if args.command == "serve" else None
    logger = get_logger(level=settings.log_level, log_dir=settings.log_dir, console_stream=console)
    relay = Relay(settings, logger)
    relay.log_write_policy()
    try:
        result = args.func(relay, args)
    except WriteBlockedError as e:
        print(f"Blocked ({e.reason}): {e}", file=sys.stderr)
        raise SystemExit(3)
    except UpstreamError as e:
        print(f"Upstream error ({e.status}): {e}", file=sys.stderr)
        raise SystemExit(4)
    except RelayError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)
    finally:
        relay.logger.log_metrics_summary()
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
