"""HTTP-based CLI to add a medical record (and its scans) to a patient."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Any

import httpx

from medrecords.domain.records.models import LocalFile

FIELD_ARGS = ("diagnosis", "treatment_plan", "medications", "allergies", "medical_history")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Add a medical record via the ingestion API")
    parser.add_argument("--patient-id", required=True, help="Target patient id")
    parser.add_argument("--diagnosis", default="", help="Diagnosis (required by the API)")
    parser.add_argument("--treatment-plan", default="")
    parser.add_argument("--medications", default="")
    parser.add_argument("--allergies", default="")
    parser.add_argument("--medical-history", default="")
    parser.add_argument(
        "--file",
        dest="files",
        action="append",
        default=[],
        help="Scan to attach (PNG/JPEG). Repeat to attach several, in order.",
    )
    parser.add_argument(
        "--token",
        default=os.getenv("MEDRECORDS_ACCESS_TOKEN"),
        help="Supabase access token (defaults to MEDRECORDS_ACCESS_TOKEN)",
    )
    parser.add_argument(
        "--api-url",
        default=os.getenv("MEDRECORDS_API_URL", "http://localhost:8000"),
        help="Base URL for the ingestion API",
    )
    parser.add_argument("--timeout", type=float, default=120.0, help="Request timeout in seconds")
    return parser.parse_args(argv)


def build_form(args: argparse.Namespace) -> dict[str, str]:
    return {name: str(getattr(args, name) or "") for name in FIELD_ARGS}


def build_files(paths: list[str]) -> list[tuple[str, tuple[str, bytes, str]]]:
    files: list[tuple[str, tuple[str, bytes, str]]] = []
    for raw in paths:
        local_file = LocalFile.from_path(raw)
        files.append(("files", (local_file.filename, local_file.data, local_file.content_type)))
    return files


async def submit(args: argparse.Namespace, transport: httpx.AsyncBaseTransport | None = None) -> tuple[int, dict[str, Any]]:
    headers = {"Authorization": f"Bearer {args.token}"} if args.token else {}
    url = args.api_url.rstrip("/") + f"/api/v1/patients/{args.patient_id}/medical-records"
    async with httpx.AsyncClient(timeout=args.timeout, transport=transport) as client:
        response = await client.post(
            url,
            data=build_form(args),
            files=build_files(args.files) or None,
            headers=headers,
        )
    try:
        body = response.json()
    except ValueError:
        body = {"raw": response.text}
    return response.status_code, body if isinstance(body, dict) else {"raw": body}


def render(status_code: int, body: dict[str, Any]) -> str:
    if status_code < 400:
        record = body.get("record") or {}
        lines = [str(body.get("message") or "Medical record added."), f"record_id: {record.get('id')}"]
        for index, url in enumerate(record.get("file_urls") or [], start=1):
            lines.append(f"file[{index}]: {url}")
        return "\n".join(lines)

    error = body.get("error") if isinstance(body.get("error"), dict) else {}
    lines = [f"[{status_code}] {error.get('code', 'ERROR')}: {error.get('message') or body}"]
    details = error.get("details") if isinstance(error.get("details"), dict) else {}
    for path in details.get("orphaned_paths") or []:
        lines.append(f"orphaned: {path}")
    return "\n".join(lines)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        status_code, body = await submit(args)
    except httpx.HTTPError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 2
    output = render(status_code, body)
    print(output, file=sys.stdout if status_code < 400 else sys.stderr)
    return 0 if status_code < 400 else 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
