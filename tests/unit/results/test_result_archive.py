from __future__ import annotations

import asyncio
import hashlib

import httpx

from src.surfacegen.domain.models import GenerationRun, Job
from src.surfacegen.results.result_archive import ResultArchive, identity_key
from tests.mocks.generators import png_bytes, png_data_uri


def test_identity_key_is_filesystem_safe() -> None:
    key = identity_key("A.User+tag@Example.com")

    assert key.startswith("a.user_tag_example.com-")
    assert "/" not in key
    assert identity_key("a.user+tag@example.com") == key


def test_save_run_writes_success_images_only(tmp_path, logo) -> None:
    run = GenerationRun.start(logo, ["t1", "t2"])
    run.results["t1"] = Job.succeeded("t1", png_data_uri(), attempt=1)

    saved = asyncio.run(ResultArchive(tmp_path).save_run("a@b.c", run))

    assert [item.template_id for item in saved] == ["t1"]
    assert saved[0].path == tmp_path / identity_key("a@b.c") / run.id / "t1.png"
    assert saved[0].checksum == hashlib.sha256(png_bytes()).hexdigest()


def test_failed_download_is_logged_and_skipped(tmp_path, logo) -> None:
    run = GenerationRun.start(logo, ["t1", "t2"])
    run.results["t1"] = Job.succeeded("t1", "https://cdn.test/missing.png", attempt=1)
    run.results["t2"] = Job.succeeded("t2", "https://cdn.test/ok.jpg", attempt=1)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/ok.jpg":
            return httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg"})
        return httpx.Response(404)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await ResultArchive(tmp_path, http_client=client).save_run("a@b.c", run)

    saved = asyncio.run(_run())

    assert [item.template_id for item in saved] == ["t2"]
    assert saved[0].path.suffix == ".jpg"
