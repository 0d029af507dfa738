import argparse
import asyncio
import json
import re
import sys
from pathlib import Path
from typing import Any, Dict

from app.core.config import missing_catalog_settings, settings
from app.core.logging_config import configure_logging
from app.services import email as email_service
from app.services import maintenance_scheduler, welcome_codes
from app.services.catalog_client import CatalogClient
from app.services.errors import MaintenanceFailed

SAFE_HTML_FILENAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*\.html$")


def _resolve_html_path(raw_path: str) -> Path:
    raw = (raw_path or "").strip()
    if not raw:
        raise SystemExit("Path is required")
    if Path(raw).name != raw:
        raise SystemExit("Only HTML file names are allowed (no directories)")
    if not SAFE_HTML_FILENAME_RE.fullmatch(raw):
        raise SystemExit("Invalid HTML file name")
    resolved = (Path.cwd().resolve() / raw).resolve(strict=False)
    if resolved.exists() and resolved.is_dir():
        raise SystemExit(f"Output path points to a directory: {resolved}")
    return resolved


def _require_catalog_settings() -> None:
    missing = missing_catalog_settings(settings)
    if missing:
        raise SystemExit(f"Missing required env vars: {', '.join(missing)}")


async def run_maintenance() -> Dict[str, Any]:
    try:
        result = await maintenance_scheduler.run_once()
    except MaintenanceFailed as exc:
        return {"success": False, "error": str(exc), "timestamp": exc.timestamp, "deleted": exc.deleted}
    return {
        "success": True,
        "timestamp": result.timestamp,
        "deleted": result.deleted,
        "stats_before": result.stats_before.model_dump(mode="json"),
        "stats_after": result.stats_after.model_dump(mode="json"),
    }


async def issue_code(customer_id: str) -> Dict[str, Any]:
    async with CatalogClient.from_settings(settings) as client:
        result = await welcome_codes.issue_welcome_code(
            client,
            customer_id,
            price_rule_id=str(settings.price_rule_id),
            prefix=settings.welcome_code_prefix,
            length=settings.welcome_code_length,
            max_attempts=settings.welcome_code_max_attempts,
            lock_ttl_seconds=settings.issuance_lock_ttl_seconds,
        )
    return {"success": True, "code": result.code, "reused": result.reused}


def write_email_preview(output: Path) -> Path:
    output.write_text(email_service.sample_confirm_subscription()["html"], encoding="utf-8")
    return output


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront discount code tooling")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("maintenance", help="Delete stale discount codes once and print the report")
    issue = subparsers.add_parser("issue-welcome-code", help="Issue (or reuse) the welcome code for one customer")
    issue.add_argument("customer_id", help="Numeric id or gid://shopify/Customer/<id>")
    preview = subparsers.add_parser("preview-email", help="Write the subscription confirmation email to an HTML file")
    preview.add_argument("--output", default="email-preview.html")
    return parser


def _run_cli_command(args: argparse.Namespace) -> int | None:
    if args.command == "maintenance":
        _require_catalog_settings()
        report = asyncio.run(run_maintenance())
        print(json.dumps(report, indent=2))
        return 0 if report["success"] else 1

    if args.command == "issue-welcome-code":
        _require_catalog_settings()
        print(json.dumps(asyncio.run(issue_code(args.customer_id)), indent=2))
        return 0

    if args.command == "preview-email":
        path = write_email_preview(_resolve_html_path(args.output))
        print(f"Email preview written to {path}")
        return 0

    return None


def main() -> None:
    configure_logging(settings.log_json)
    parser = _build_parser()
    args = parser.parse_args()
    code = _run_cli_command(args)
    if code is None:
        parser.print_help()
        return
    sys.exit(code)


if __name__ == "__main__":
    main()
