import asyncio

import httpx

from medrecords.cli.submit_record_cli import build_files, build_form, parse_args, render, submit


def test_parse_args_collects_repeated_files() -> None:
    args = parse_args(
        ["--patient-id", "p1", "--diagnosis", "Flu", "--file", "a.png", "--file", "b.jpg", "--token", "t"]
    )

    assert args.files == ["a.png", "b.jpg"]
    assert build_form(args)["diagnosis"] == "Flu"
    assert build_form(args)["treatment_plan"] == ""


def test_submit_posts_multipart_with_bearer(tmp_path) -> None:
    scan = tmp_path / "scan.png"
    scan.write_bytes(b"png")
    seen = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = request.content
        return httpx.Response(
            201,
            json={
                "status": "succeeded",
                "message": "Medical record added successfully!",
                "record": {"id": "rec-1", "file_urls": ["https://cdn/1.png"]},
            },
        )

    args = parse_args(
        ["--patient-id", "p1", "--diagnosis", "Flu", "--file", str(scan), "--token", "tok", "--api-url", "http://api/"]
    )
    status_code, body = asyncio.run(submit(args, transport=httpx.MockTransport(_handler)))

    assert status_code == 201
    assert seen["url"] == "http://api/api/v1/patients/p1/medical-records"
    assert seen["auth"] == "Bearer tok"
    assert b'filename="scan.png"' in seen["body"]
    assert "file[1]: https://cdn/1.png" in render(status_code, body)


def test_render_failure_lists_orphans() -> None:
    output = render(
        502,
        {
            "error": {
                "code": "COMMIT_ERROR",
                "message": "Failed to add medical record: boom",
                "details": {"orphaned_paths": ["records/p1/1_a.png"]},
            }
        },
    )

    assert output.splitlines() == [
        "[502] COMMIT_ERROR: Failed to add medical record: boom",
        "orphaned: records/p1/1_a.png",
    ]


def test_build_files_guesses_content_type_per_file(tmp_path) -> None:
    jpeg = tmp_path / "lateral.jpg"
    jpeg.write_bytes(b"jpg")
    unknown = tmp_path / "notes.bin1"
    unknown.write_bytes(b"raw")

    files = build_files([str(jpeg), str(unknown)])

    assert files == [
        ("files", ("lateral.jpg", b"jpg", "image/jpeg")),
        ("files", ("notes.bin1", b"raw", "application/octet-stream")),
    ]
