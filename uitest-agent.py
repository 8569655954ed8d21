#!/usr/bin/env python3
import argparse
import asyncio
import sys
import traceback

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from uitest_agent.config import find_config_file, load_config
from uitest_agent.data import GenerationMode
from uitest_agent.exceptions import ConfigurationError
from uitest_agent.executor import ParallelMode
from uitest_agent.tms import ConfigTestCaseSource, ManualTestCaseSource


async def check_playwright_browsers_async():
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            await browser.close()
        print("✅ Playwright browsers available")
        return True
    except PlaywrightError as e:
        print(f"⚠️ Playwright browsers unavailable: {e}")
        return False


def print_summary(results):
    passed = [r for r in results if r.success]
    print(f"🔢 Total test cases: {len(results)}")
    print(f"✅ Passed: {len(passed)}")
    print(f"❌ Failed: {len(results) - len(passed)}")
    for result in results:
        mark = "✅" if result.success else "❌"
        line = f"   {mark} {result.title} [{result.mode.value}, {result.verify_calls} verify runs]"
        if result.persisted_to:
            line += f" -> {result.persisted_to}"
        elif result.error_message:
            line += f": {result.error_message}"
        print(line)


async def run(args):
    config = load_config(find_config_file(args.config), env_file=args.env_file)
    if not config.llm_config.api_key:
        raise ConfigurationError(
            "LLM API Key not configured! Set OPENAI_API_KEY or llm_config.api_key in the config file"
        )

    if args.steps:
        source = ManualTestCaseSource(args.steps, title=args.title)
    else:
        source = ConfigTestCaseSource(config.test_cases)
    test_cases = source.fetch()
    if not test_cases:
        print("⚠️  No test cases found, please check the configuration file")
        return 1

    print("🔍 Checking Playwright browsers...")
    if not await check_playwright_browsers_async():
        print("Please run `playwright install` to install browser binaries, then retry.", file=sys.stderr)
        return 1

    mode = GenerationMode(args.mode) if args.mode else None
    results = await ParallelMode(config).run(test_cases, url=args.url, mode=mode)
    print_summary(results)
    return 0 if all(r.success for r in results) else 2


def parse_args():
    parser = argparse.ArgumentParser(description="UI test generation agent")
    parser.add_argument("--config", "-c", help="YAML configuration file path (default: config/config.yaml)")
    parser.add_argument("--url", "-u", help="Target URL, overrides target.url")
    parser.add_argument("--steps", "-s", help='Manual test case, steps separated by ";"')
    parser.add_argument("--title", "-t", help="Title for the manual test case")
    parser.add_argument("--mode", "-m", choices=[m.value for m in GenerationMode], help="Generation mode")
    parser.add_argument("--env-file", help="Path of a .env file to load")
    return parser.parse_args()


def main():
    args = parse_args()
    try:
        exit_code = asyncio.run(run(args))
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)
    except Exception:
        print("Test generation failed, stack trace:", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
