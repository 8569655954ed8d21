import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Union

from uitest_agent.data import TestCase
from uitest_agent.exceptions import ConfigurationError


class TestCaseSource(ABC):
    __test__ = False

    @abstractmethod
    def fetch(self) -> List[TestCase]:
        """Return the test cases to generate."""


class ManualTestCaseSource(TestCaseSource):
    """A single test case typed in as ``"step one; step two; ..."``."""

    title = "Manual Test"

    def __init__(self, steps: Union[str, Iterable[str]], title: str = None):
        self.steps = steps
        if title:
            self.title = title

    def fetch(self) -> List[TestCase]:
        if isinstance(self.steps, str):
            descriptions = self.steps.split(";")
        else:
            descriptions = list(self.steps)
        test_case = TestCase.from_descriptions(self.title, descriptions)
        if not test_case.steps:
            raise ConfigurationError("Manual test case has no steps")
        return [test_case]


class ConfigTestCaseSource(TestCaseSource):
    """Test cases listed under ``test_cases`` in the YAML config."""

    def __init__(self, test_case_configs):
        self.test_case_configs = list(test_case_configs or [])

    def fetch(self) -> List[TestCase]:
        test_cases = []
        for item in self.test_case_configs:
            test_case = item.to_test_case()
            if not test_case.steps:
                logging.warning(f"Skipping test case '{test_case.title}': no steps")
                continue
            test_cases.append(test_case)
        logging.info(f"Loaded {len(test_cases)} test cases from config")
        return test_cases
