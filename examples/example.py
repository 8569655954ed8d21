import asyncio
import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from dotenv import load_dotenv
load_dotenv()

from uitest_agent.config import build_config
from uitest_agent.executor import ParallelMode
from uitest_agent.tms import ManualTestCaseSource


async def example():
    config = build_config({
        "target": {"url": "https://example.com", "max_concurrent_tests": 1},
        "llm_config": {"model": "gpt-4o-mini"},
        "browser_config": {"headless": False},
        "cache": {"type": "memory"},
        "generation": {"mode": "step_by_step", "output_dir": "./generated_tests"},
    })

    test_cases = ManualTestCaseSource(
        "Open the home page; Click the 'More information' link; Verify the URL contains 'iana.org'",
        title="More information link",
    ).fetch()

    results = await ParallelMode(config).run(test_cases)
    for result in results:
        print(result.title, result.status.value, result.persisted_to or result.error_message)


if __name__ == "__main__":
    asyncio.run(example())
