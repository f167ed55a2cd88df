#!/usr/bin/env python3
"""
End-to-end check of the video generation pipeline against the real OpenAI
and D-ID APIs. Records are kept in memory.

Usage:
    training-video-e2e [--verbose] [--title=...] [--content=...] [--presenter=...]

Exit code 0 when every check passes, 1 otherwise.
"""
import os
import sys
import time
import asyncio
import argparse
import logging

from .settings import missing_keys
from .avatars import default_avatar_config, find_avatar, list_avatars
from .errors import ErrorKind, VideoGenerationError
from .kv_storage import InMemoryStore
from .models import VideoStatus
from .orchestrator import build_pipeline
from .validation import validate_script_or_raise

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "E2E Test: Business Manners Basics"
DEFAULT_CONTENT = "こんにちは。本日はビジネスマナーの基礎についてご説明します。まず、挨拶の重要性からお話しします。"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="training-video-e2e", description="Video generation E2E test runner")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument("--title", default=DEFAULT_TITLE, help="Override test script title")
    parser.add_argument("--content", default=DEFAULT_CONTENT, help="Override test script content")
    parser.add_argument("--presenter", default=None, help="Override presenter image URL")
    return parser.parse_args(argv)


def _mask(key: str) -> str:
    return f"{key[:10]}..." if key else "(unset)"


async def run_checks(args, pipeline=None) -> dict:
    store = pipeline.store if pipeline else InMemoryStore()
    pipeline = pipeline or build_pipeline(store)
    results = {
        "video_generation": False,
        "database_update": False,
        "error_handling": False,
        "avatar_fallback": False,
        "multiple_avatars": False,
    }
    errors = []

    def on_progress(state):
        print(f"   ⏳ {state.current_step.value} ({state.progress_percent}%) {state.message}")

    # 1. Full pipeline
    print("\n🎬 Testing complete video generation flow...")
    job = None
    try:
        job = await pipeline.create_and_generate(args.title, args.content, presenter_url=args.presenter,
                                                 on_progress=on_progress)
        results["video_generation"] = bool(job.video_url)
        print(f"✅ Video generated: {job.video_url}")
        print(f"🎭 Avatar used: {job.avatar_used}")
    except VideoGenerationError as e:
        errors.append(f"Video generation failed: {e.kind.value}: {e.message}")
        print(f"❌ Video generation failed: {e.message}")

    # 2. Persisted record
    print("\n💾 Testing database update...")
    if job is not None:
        stored = await store.get_video_job(job.id)
        script = await store.get_script(job.script_id)
        if stored and stored.status == VideoStatus.COMPLETED and stored.video_url and script and script.video_url:
            results["database_update"] = True
            print("✅ Job and script records updated")
        else:
            errors.append("Persisted records were not updated to completed")
            print("❌ Persisted records not updated")
    else:
        errors.append("No job to verify")

    # 3. Validation errors are classified and not retryable
    print("\n🛡️  Testing error handling...")
    try:
        validate_script_or_raise("")
        errors.append("Empty script passed validation")
    except VideoGenerationError as e:
        if e.kind == ErrorKind.VALIDATION_ERROR and not e.retryable:
            results["error_handling"] = True
            print("✅ Empty script rejected with VALIDATION_ERROR")
        else:
            errors.append(f"Unexpected error classification: {e!r}")

    # 4. Fallback configuration
    print("\n🔄 Testing avatar fallback configuration...")
    config = default_avatar_config()
    urls = [config.primary, *config.fallbacks]
    if config.fallbacks and all(u.startswith("https://") for u in urls):
        results["avatar_fallback"] = True
        print(f"✅ Primary avatar: {config.primary}")
        print(f"✅ Fallback avatars configured: {len(config.fallbacks)}")
    else:
        errors.append("Avatar fallback configuration is invalid")

    # 5. Catalog: every listed presenter resolves by url and points at D-ID
    print("\n🎭 Testing multiple avatars...")
    catalog = list_avatars(limit=100)
    valid = [a for a in catalog if find_avatar(a.source_url) == a and a.source_url.startswith("https://")
             and "d-id" in a.source_url]
    if len(catalog) > 1 and len(valid) == len(catalog):
        results["multiple_avatars"] = True
        print(f"✅ Multiple avatars validated ({len(valid)}/{len(catalog)})")
    else:
        errors.append(f"Multiple avatars check partial success: {len(valid)}/{len(catalog)}")

    return {"passed": all(results.values()), "results": results, "errors": errors}


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    print("🎬 Video Generation E2E Test Runner")
    print("=" * 50)

    missing = missing_keys()
    if missing:
        for name in missing:
            print(f"❌ Error: {name} environment variable is required")
        return 1

    if args.verbose:
        print("📝 Test Configuration:")
        print(f"  Title: {args.title}")
        print(f"  Content: {args.content}")
        print(f"  Presenter Image: {args.presenter or default_avatar_config().primary}")
        print(f"  OpenAI API Key: {_mask(os.getenv('OPENAI_API_KEY', ''))}")
        print(f"  D-ID API Key: {_mask(os.getenv('DID_API_KEY', ''))}")

    start = time.time()
    try:
        report = asyncio.run(run_checks(args))
    except Exception as e:
        print(f"💥 Fatal error running E2E tests: {e}")
        logger.error("E2E run crashed", exc_info=True)
        return 1

    print("\n" + "=" * 50)
    for name, ok in report["results"].items():
        print(f"{'✅' if ok else '❌'} {name}")
    for err in report["errors"]:
        print(f"   ⚠️  {err}")
    print(f"⏱️  Execution time: {time.time() - start:.1f}s")
    print("\n🎉 ALL CHECKS PASSED" if report["passed"] else "\n💥 E2E TEST FAILED")
    return 0 if report["passed"] else 1


if __name__ == "__main__":
    sys.exit(main())
