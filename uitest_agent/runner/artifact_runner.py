import asyncio
import logging
import re
import sys
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

from uitest_agent.data import ExecutionResult, TestArtifact
from uitest_agent.llm.prompt import sanitize_identifier

_SUMMARY_RE = re.compile(r"^(FAILED|ERROR) .*$", re.MULTILINE)
_ERROR_LINE_RE = re.compile(r"^E\s+(.*)$", re.MULTILINE)


class Verifier(ABC):
    @abstractmethod
    async def run_artifact(self, artifact: TestArtifact, driver=None) -> ExecutionResult:
        """Execute a generated test program and report its outcome."""


class PytestArtifactRunner(Verifier):
    """Runs generated pytest modules in a subprocess."""

    def __init__(self, timeout_seconds: float = 300, headless: bool = True, browser: str = "chromium",
                 python_executable: str = None, work_dir: str = None):
        self.timeout_seconds = timeout_seconds
        self.headless = headless
        self.browser = browser
        self.python_executable = python_executable or sys.executable
        self.work_dir = work_dir

    def build_command(self, test_file: Path) -> list:
        cmd = [
            self.python_executable, "-m", "pytest", str(test_file),
            "-q", "--tb=short", "-p", "no:cacheprovider",
            "--browser", self.browser,
        ]
        if not self.headless:
            cmd.append("--headed")
        return cmd

    async def run_artifact(self, artifact: TestArtifact, driver=None) -> ExecutionResult:
        with tempfile.TemporaryDirectory(prefix="uitest_agent_", dir=self.work_dir) as tmp:
            test_file = Path(tmp) / "test_generated.py"
            test_file.write_text(artifact.source, encoding="utf-8")

            returncode, output = await self._run(self.build_command(test_file), cwd=tmp)

        if returncode == 0:
            logging.info("Generated test passed")
            return ExecutionResult(success=True, message="Test passed")

        message, stack_trace = parse_pytest_output(output, returncode)
        logging.warning(f"Generated test failed: {message}")
        screenshot, trace_path = await self._collect_evidence(driver)
        return ExecutionResult(
            success=False,
            message=message,
            stack_trace=stack_trace,
            screenshot=screenshot,
            trace_path=trace_path,
        )

    async def _run(self, cmd: list, cwd: str) -> Tuple[Optional[int], str]:
        logging.debug(f"Running generated test: {' '.join(cmd)}")
        process = await asyncio.create_subprocess_exec(
            *cmd, cwd=cwd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.STDOUT
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return None, f"Test run timed out after {self.timeout_seconds}s"
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise
        return process.returncode, stdout.decode(errors="replace") if stdout else ""

    @staticmethod
    async def _collect_evidence(driver) -> Tuple[Optional[str], Optional[str]]:
        if driver is None:
            return None, None
        screenshot = None
        try:
            screenshot = await driver.screenshot()
        except Exception as e:
            logging.warning(f"Could not capture failure screenshot: {e}")
        trace_path = await driver.save_trace("verify_failure")
        return screenshot, trace_path


def parse_pytest_output(output: str, returncode: Optional[int]) -> Tuple[str, Optional[str]]:
    """Pull a one-line failure message and the traceback out of pytest's
    console output."""
    if returncode is None:
        return output, None

    errors = _ERROR_LINE_RE.findall(output)
    summary = _SUMMARY_RE.findall(output)
    if errors:
        message = errors[0].strip()
    elif summary:
        message = _SUMMARY_RE.search(output).group(0)
    elif returncode == 5:
        message = "No tests were collected from the generated program"
    else:
        lines = [line for line in output.strip().splitlines() if line.strip()]
        message = lines[-1] if lines else f"pytest exited with code {returncode}"
    return message, output.strip() or None


class ArtifactStore(ABC):
    @abstractmethod
    def persist(self, title: str, artifact: TestArtifact) -> str:
        """Write a verified artifact and return where it went."""


class LocalArtifactStore(ArtifactStore):
    def __init__(self, output_dir: str = "./generated_tests"):
        self.output_dir = Path(output_dir)

    def file_name(self, title: str) -> str:
        return f"test_{sanitize_identifier(title)}.py"

    def persist(self, title: str, artifact: TestArtifact) -> str:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / self.file_name(title)
        target.write_text(artifact.source, encoding="utf-8")
        logging.info(f"Saved generated test to {target}")
        return str(target.resolve())
