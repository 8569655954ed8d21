import asyncio

from fakes import FAIL, PASS, FakeOracle, FakePageDriver, FakeSynthesizer, FakeVerifier
from uitest_agent.data import ActionType, GenerationMode, Instruction, TestCase, TestStatus
from uitest_agent.executor import RepairCycle, StepByStepOrchestrator


def build(answers, cache, store, verifier=None, synthesizer=None, fail_fast=False, **kwargs):
    oracle = FakeOracle(answers)
    synthesizer = synthesizer or FakeSynthesizer()
    verifier = verifier or FakeVerifier(PASS)
    cycle = RepairCycle(synthesizer, verifier, store, max_attempts=3)
    orchestrator = StepByStepOrchestrator(oracle, synthesizer, cycle, cache, fail_fast=fail_fast, **kwargs)
    return orchestrator, oracle, synthesizer, verifier


def test_first_run_consults_oracle_and_persists(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, oracle, synthesizer, verifier = build(login_answers, memory_cache, store)
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))

    assert result.status == TestStatus.PASSED
    assert result.mode == GenerationMode.STEP_BY_STEP
    assert len(oracle.calls) == 2
    assert len(memory_cache.backend) == 2
    assert [r.step_index for r in result.records] == [1, 2]
    assert all(r.success and not r.cache_hit for r in result.records)
    assert len(synthesizer.synthesized) == 1
    assert synthesizer.repairs == []
    assert result.verify_calls == 1
    assert result.repair_attempts == 0
    assert result.persisted_to == "/generated/Login flow.py"
    assert store.saved["Login flow"] == result.artifact


def test_second_run_reuses_cached_decisions(login_case, login_answers, memory_cache, store, test_url):
    first, _, _, _ = build(login_answers, memory_cache, store)
    first_result = asyncio.run(first.process_test_case(login_case, test_url, FakePageDriver()))

    second, oracle, _, _ = build(login_answers, memory_cache, store)
    second_result = asyncio.run(second.process_test_case(login_case, test_url, FakePageDriver()))

    assert second_result.status == TestStatus.PASSED
    assert oracle.calls == []
    assert all(r.cache_hit for r in second_result.records)
    assert second_result.artifact == first_result.artifact
    assert [r.fingerprint for r in second_result.records] == [r.fingerprint for r in first_result.records]


def test_exhausted_repair_invalidates_this_runs_fingerprints(login_case, login_answers, memory_cache, store,
                                                             test_url):
    orchestrator, _, synthesizer, verifier = build(login_answers, memory_cache, store, verifier=FakeVerifier(FAIL))
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))

    assert result.status == TestStatus.FAILED
    assert len(verifier.runs) == 3
    assert len(synthesizer.repairs) == 2
    assert result.verify_calls == 3
    assert result.repair_attempts == 2
    assert result.persisted_to is None
    assert "Locator not found" in result.error_message
    assert result.invalidated_fingerprints == [r.fingerprint for r in result.records]
    assert len(memory_cache.backend) == 0
    assert store.saved == {}


def test_exhausted_repair_leaves_other_runs_entries(login_case, login_answers, memory_cache, store, test_url):
    unrelated = Instruction(action_type=ActionType.CLICK, locator="#checkout", description="Checkout")
    asyncio.run(memory_cache.put("fingerprint-from-another-case", unrelated))

    orchestrator, _, _, _ = build(login_answers, memory_cache, store, verifier=FakeVerifier(FAIL))
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))

    assert result.status == TestStatus.FAILED
    assert "fingerprint-from-another-case" not in result.invalidated_fingerprints
    assert asyncio.run(memory_cache.get("fingerprint-from-another-case")) == unrelated
    assert all(asyncio.run(memory_cache.get(key)) is None for key in result.invalidated_fingerprints)
    assert len(memory_cache.backend) == 1


def test_repair_error_before_budget_is_spent_keeps_cache(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, _, _, verifier = build(
        login_answers, memory_cache, store, verifier=FakeVerifier(FAIL), synthesizer=FakeSynthesizer(fail_repair=True)
    )
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))

    assert result.status == TestStatus.FAILED
    assert result.error_message.startswith("Repair failed")
    assert len(verifier.runs) == 1
    assert result.invalidated_fingerprints == []
    assert len(memory_cache.backend) == 2


def test_repair_success_keeps_cache(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, _, synthesizer, _ = build(login_answers, memory_cache, store, verifier=FakeVerifier(FAIL, PASS))
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))

    assert result.status == TestStatus.PASSED
    assert result.verify_calls == 2
    assert result.repair_attempts == 1
    assert result.artifact.source.endswith("# repair 1\n")
    assert result.invalidated_fingerprints == []
    assert len(memory_cache.backend) == 2
    diagnostics = synthesizer.repairs[0]
    assert diagnostics.message == "Locator not found"
    assert diagnostics.dom_snapshot == "<html><body>full</body></html>"


def test_each_step_sees_the_previous_steps_output(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, oracle, _, _ = build(login_answers, memory_cache, store)
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))

    first_call, second_call = oracle.calls
    assert first_call["state"].dom_snapshot.endswith('"actions": 0}')
    assert first_call["previous"] == []
    assert second_call["state"] == result.records[0].state_after
    assert second_call["previous"] == [login_answers["open page"]]


def test_failed_step_does_not_stop_the_run(memory_cache, store, test_url, login_answers):
    case = TestCase.from_descriptions("Login flow", ["click login", "open page", "click login again"])
    answers = {
        **login_answers,
        "click login again": Instruction(action_type=ActionType.CLICK, locator="#retry", description="Retry"),
    }
    orchestrator, oracle, synthesizer, _ = build(answers, memory_cache, store)
    driver = FakePageDriver(failing_locators={"#login"})
    result = asyncio.run(orchestrator.process_test_case(case, test_url, driver))

    assert [r.success for r in result.records] == [False, True, True]
    assert len(synthesizer.synthesized[0]) == 3
    assert oracle.calls[1]["state"] == result.records[0].state_after
    assert len(driver.executed) == 3


def test_fail_fast_stops_at_first_failed_step(memory_cache, store, test_url, login_answers):
    case = TestCase.from_descriptions("Login flow", ["click login", "open page"])
    orchestrator, oracle, synthesizer, _ = build(login_answers, memory_cache, store, fail_fast=True)
    result = asyncio.run(orchestrator.process_test_case(case, test_url, FakePageDriver(failing_locators={"#login"})))

    assert len(result.records) == 1
    assert not result.records[0].success
    assert len(oracle.calls) == 1
    assert len(synthesizer.synthesized[0]) == 1


def test_navigation_failure_attempts_no_steps(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, oracle, synthesizer, verifier = build(login_answers, memory_cache, store)
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver(fail_navigate=True)))

    assert result.status == TestStatus.FAILED
    assert result.error_message.startswith("Navigation failed")
    assert result.records == []
    assert oracle.calls == []
    assert synthesizer.synthesized == []
    assert verifier.runs == []


def test_oracle_failure_is_recorded_and_loop_continues(memory_cache, store, test_url, login_answers):
    case = TestCase.from_descriptions("Login flow", ["do something odd", "click login"])
    orchestrator, oracle, synthesizer, _ = build(login_answers, memory_cache, store)
    driver = FakePageDriver()
    result = asyncio.run(orchestrator.process_test_case(case, test_url, driver))

    first, second = result.records
    assert not first.success
    assert first.instruction is None
    assert first.error_message.startswith("Step analysis failed")
    assert second.success
    assert len(driver.executed) == 1
    assert len(memory_cache.backend) == 1
    assert result.status == TestStatus.PASSED


def test_synthesis_failure_is_reported(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, _, _, verifier = build(
        login_answers, memory_cache, store, synthesizer=FakeSynthesizer(fail_synthesize=True)
    )
    result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))

    assert result.status == TestStatus.FAILED
    assert result.error_message.startswith("Code synthesis failed")
    assert verifier.runs == []
    assert result.invalidated_fingerprints == []
    assert len(memory_cache.backend) == 2


def test_hash_failure_means_cache_miss(login_case, login_answers, memory_cache, store, test_url):
    def no_key(*args):
        return None

    for _ in range(2):
        orchestrator, oracle, _, _ = build(login_answers, memory_cache, store, fingerprint_fn=no_key)
        result = asyncio.run(orchestrator.process_test_case(login_case, test_url, FakePageDriver()))
        assert result.status == TestStatus.PASSED
        assert len(oracle.calls) == 2
    assert len(memory_cache.backend) == 0


def test_analyze_only_plans_without_executing(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, oracle, _, _ = build(login_answers, memory_cache, store)
    driver = FakePageDriver()
    planned = asyncio.run(orchestrator.analyze_only(login_case, test_url, driver))

    assert planned == [login_answers["open page"], login_answers["click login"]]
    assert driver.executed == []
    assert oracle.calls[1]["previous"] == [login_answers["open page"]]
    assert len(memory_cache.backend) == 0


def test_parallel_runs_share_one_cache(login_case, login_answers, memory_cache, store, test_url):
    async def scenario():
        runs = [build(login_answers, memory_cache, store)[0] for _ in range(3)]
        return await asyncio.gather(
            *[run.process_test_case(login_case, test_url, FakePageDriver()) for run in runs]
        )

    results = asyncio.run(scenario())
    assert all(r.status == TestStatus.PASSED for r in results)
    assert len(memory_cache.backend) == 2


def test_analyze_only_plans_nothing_when_start_page_fails(login_case, login_answers, memory_cache, store, test_url):
    orchestrator, oracle, _, _ = build(login_answers, memory_cache, store)
    planned = asyncio.run(orchestrator.analyze_only(login_case, test_url, FakePageDriver(fail_navigate=True)))

    assert planned == []
    assert oracle.calls == []
