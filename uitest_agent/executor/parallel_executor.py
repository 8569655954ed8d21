import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from uitest_agent.browser.page_driver import PlaywrightPageDriver
from uitest_agent.browser.session import BrowserSessionManager
from uitest_agent.data import GenerationMode, TestCase, TestCaseResult, TestStatus
from uitest_agent.executor.unified_agent import UnifiedTestAgent


class ParallelTestExecutor:
    """Runs test cases concurrently, one isolated browser per worker.

    The agent (and the decision cache behind it) is shared; pages, records
    and artifacts belong to a single worker.
    """

    def __init__(
        self,
        agent: UnifiedTestAgent,
        max_concurrent_tests: int = 4,
        test_timeout: Optional[float] = 900,
        browser_config: Dict[str, Any] = None,
        dom_config=None,
        driver_factory: Callable[[], Awaitable[Any]] = None,
    ):
        if max_concurrent_tests < 1:
            raise ValueError("max_concurrent_tests must be at least 1")
        self.agent = agent
        self.max_concurrent_tests = max_concurrent_tests
        self.test_timeout = test_timeout
        self.browser_config = browser_config
        self.dom_config = dom_config
        self.session_manager = BrowserSessionManager()
        self.driver_factory = driver_factory or self._create_page_driver

        self.running_tests: Dict[str, asyncio.Task] = {}

    async def _create_page_driver(self):
        session = await self.session_manager.create_session(self.browser_config)
        return PlaywrightPageDriver(session, self.dom_config)

    async def execute_parallel_tests(self, test_cases: List[TestCase], url: str,
                                     mode: GenerationMode = None) -> List[TestCaseResult]:
        """Run every test case and return their results in input order."""
        if not test_cases:
            logging.warning("No test cases to run")
            return []

        logging.info(f"Running {len(test_cases)} test cases with up to {self.max_concurrent_tests} in parallel")
        semaphore = asyncio.Semaphore(min(self.max_concurrent_tests, len(test_cases)))
        tasks = []
        for i, test_case in enumerate(test_cases):
            task = asyncio.create_task(self._execute_single_test(test_case, url, mode, semaphore))
            tasks.append(task)
            self.running_tests[f"{i}:{test_case.title}"] = task

        try:
            try:
                outcomes = await asyncio.gather(*tasks, return_exceptions=True)
                cancelled = False
            except asyncio.CancelledError:
                logging.warning("Test run was cancelled, collecting finished results.")
                outcomes = []
                for task in tasks:
                    if task.done() and not task.cancelled():
                        outcomes.append(task.exception() or task.result())
                    else:
                        task.cancel()
                        outcomes.append(asyncio.CancelledError())
                cancelled = True

            results = []
            for test_case, outcome in zip(test_cases, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    results.append(self._closed_result(test_case, TestStatus.CANCELLED, "Test was cancelled"))
                elif isinstance(outcome, BaseException):
                    logging.error(f"Test {test_case.title} failed with exception: {outcome}")
                    results.append(self._closed_result(test_case, TestStatus.FAILED, str(outcome)))
                else:
                    results.append(outcome)
        finally:
            self.running_tests.clear()
            await self.session_manager.close_all_sessions()

        if cancelled:
            raise asyncio.CancelledError()

        passed = sum(1 for r in results if r.success)
        logging.info(f"Test run completed: {passed}/{len(results)} passed")
        return results

    async def _execute_single_test(self, test_case: TestCase, url: str, mode: Optional[GenerationMode],
                                   semaphore: asyncio.Semaphore) -> TestCaseResult:
        async with semaphore:
            logging.info(f"Starting test: {test_case.title}")
            driver = None
            try:
                driver = await self.driver_factory()
                result = await asyncio.wait_for(
                    self.agent.generate_and_run(test_case, url, driver, mode),
                    timeout=self.test_timeout,
                )
                logging.info(f"Test finished: {test_case.title} -> {result.status.value}")
                return result

            except asyncio.TimeoutError:
                error_msg = f"Test timed out after {self.test_timeout}s"
                logging.error(f"Test failed: {test_case.title} - {error_msg}")
                return self._closed_result(test_case, TestStatus.FAILED, error_msg)

            except Exception as e:
                error_msg = f"Test execution failed: {e}"
                logging.error(f"Test failed: {test_case.title} - {error_msg}")
                return self._closed_result(test_case, TestStatus.FAILED, error_msg)

            except asyncio.CancelledError:
                logging.warning(f"Test cancelled: {test_case.title}")
                return self._closed_result(test_case, TestStatus.CANCELLED, "Test was cancelled")

            finally:
                if driver is not None and hasattr(driver, "close"):
                    try:
                        await driver.close()
                    except Exception as e:
                        logging.error(f"Error closing browser for {test_case.title}: {e}")

    @staticmethod
    def _closed_result(test_case: TestCase, status: TestStatus, error_message: str) -> TestCaseResult:
        result = TestCaseResult(title=test_case.title)
        result.start()
        result.complete(status, error_message)
        return result

    async def cancel_all_tests(self):
        for task in list(self.running_tests.values()):
            if not task.done():
                task.cancel()
        logging.info("All running tests cancelled")
