import asyncio

import pytest

from fakes import FAIL, PASS, FakePageDriver, FakeSynthesizer, FakeVerifier
from uitest_agent.data import TestArtifact, TestCase
from uitest_agent.executor import RepairCycle

CASE = TestCase.from_descriptions("Search", ["type query", "press enter"])
ARTIFACT = TestArtifact(source="def test_search(page):\n    pass\n")


@pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
def test_verifies_exactly_max_attempts_times(max_attempts, store):
    synthesizer, verifier = FakeSynthesizer(), FakeVerifier(FAIL)
    cycle = RepairCycle(synthesizer, verifier, store, max_attempts=max_attempts)
    outcome = asyncio.run(cycle.run(CASE, ARTIFACT, FakePageDriver()))

    assert not outcome.success
    assert len(verifier.runs) == max_attempts
    assert len(synthesizer.repairs) == max_attempts - 1
    assert outcome.verify_calls == max_attempts
    assert outcome.error_message == f"Failed after {max_attempts} attempts: Locator not found"
    assert outcome.execution == FAIL
    assert outcome.exhausted


def test_first_pass_skips_repair(store):
    synthesizer = FakeSynthesizer()
    outcome = asyncio.run(RepairCycle(synthesizer, FakeVerifier(PASS), store).run(CASE, ARTIFACT, FakePageDriver()))

    assert outcome.success
    assert outcome.verify_calls == 1
    assert synthesizer.repairs == []
    assert outcome.persisted_to == "/generated/Search.py"


def test_each_attempt_verifies_the_latest_artifact(store):
    verifier = FakeVerifier(FAIL, FAIL, PASS)
    outcome = asyncio.run(RepairCycle(FakeSynthesizer(), verifier, store).run(CASE, ARTIFACT, FakePageDriver()))

    assert outcome.success
    assert [a.source.count("# repair") for a in verifier.runs] == [0, 1, 2]
    assert store.saved["Search"] == verifier.runs[-1]


def test_verifier_exception_counts_as_failure(store):
    verifier = FakeVerifier(RuntimeError("pytest not installed"), PASS)
    synthesizer = FakeSynthesizer()
    outcome = asyncio.run(RepairCycle(synthesizer, verifier, store).run(CASE, ARTIFACT, FakePageDriver()))

    assert outcome.success
    assert outcome.verify_calls == 2
    assert synthesizer.repairs[0].message == "Verifier error: pytest not installed"


def test_repair_diagnostics_carry_failure_context(store):
    synthesizer = FakeSynthesizer()
    asyncio.run(RepairCycle(synthesizer, FakeVerifier(FAIL, PASS), store).run(CASE, ARTIFACT, FakePageDriver()))

    diagnostics = synthesizer.repairs[0]
    assert diagnostics.failed_source == ARTIFACT.source
    assert diagnostics.stack_trace == "Traceback ..."
    assert diagnostics.screenshot == "c2NyZWVuc2hvdA=="
    assert diagnostics.dom_snapshot == "<html><body>full</body></html>"


def test_repair_exception_ends_the_loop(store):
    verifier = FakeVerifier(FAIL)
    outcome = asyncio.run(
        RepairCycle(FakeSynthesizer(fail_repair=True), verifier, store).run(CASE, ARTIFACT, FakePageDriver())
    )

    assert not outcome.success
    assert len(verifier.runs) == 1
    assert outcome.error_message == "Repair failed: LLM unavailable"
    assert not outcome.exhausted


def test_max_attempts_must_be_positive(store):
    with pytest.raises(ValueError):
        RepairCycle(FakeSynthesizer(), FakeVerifier(), store, max_attempts=0)
