import pytest

from fakes import FakeStore
from uitest_agent.cache import DecisionCache, InMemoryCacheBackend
from uitest_agent.data import ActionType, Instruction, TestCase


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        '--url',
        action='store',
        default=None,
        help='Start URL used by the orchestration tests (overrides default)',
    )


@pytest.fixture
def test_url(request: pytest.FixtureRequest) -> str:
    return request.config.getoption('--url') or 'https://example.com/login'


@pytest.fixture
def login_case() -> TestCase:
    return TestCase.from_descriptions("Login flow", ["open page", "click login"])


@pytest.fixture
def login_answers():
    return {
        "open page": Instruction(action_type=ActionType.WAIT, locator="body", description="Wait for the page"),
        "click login": Instruction(action_type=ActionType.CLICK, locator="#login", description="Click login"),
    }


@pytest.fixture
def memory_cache() -> DecisionCache:
    return DecisionCache(InMemoryCacheBackend())


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
