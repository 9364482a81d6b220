import json

import pytest

from prowkit.flaky_config import JobConfig
from prowkit.flaky_result import (
    FAILED_STATUS,
    FLAKY_STATUS,
    LACK_DATA_STATUS,
    PASSED_STATUS,
    CaseStats,
    RepoData,
    collect_test_results_for_repo,
    combined_results_for_build,
    create_artifact_for_repo,
    filter_out_parent_tests,
    latest_finished_builds,
    required_count,
)
from prowkit.junit import CaseStatus, JunitCase, JunitSuite
from prowkit.prow import BUCKET_NAME, InMemoryStorage, new_job


def names(cases):
    return [c.name for c in cases]


@pytest.mark.parametrize(
    "original, want",
    [
        (["aaa", "bbb", "ccc"], ["aaa", "bbb", "ccc"]),
        (["aaa", "bbb", "bbb/ccc"], ["aaa", "bbb/ccc"]),
        (
            ["aaa", "bbb", "bbb/ccc", "bbb/ddd", "bbb/ddd/fff"],
            ["aaa", "bbb/ccc", "bbb/ddd/fff"],
        ),
    ],
)
def test_filter_out_parent_tests(original, want):
    got = filter_out_parent_tests([JunitCase(name=n) for n in original])
    assert got == [JunitCase(name=n) for n in want]


STATS = {
    "passed": CaseStats("a", passed=list(range(10))),
    "flaky": CaseStats("a", passed=list(range(1, 10)), failed=[0]),
    "failed": CaseStats("a", failed=list(range(10))),
    "notenoughdata": CaseStats("a", passed=list(range(7)), skipped=[7, 8, 9]),
}


@pytest.mark.parametrize(
    "key, status",
    [
        ("passed", PASSED_STATUS),
        ("flaky", FLAKY_STATUS),
        ("failed", FAILED_STATUS),
        ("notenoughdata", LACK_DATA_STATUS),
    ],
)
def test_case_status(key, status):
    assert STATS[key].status(required_count(10)) == status


def test_required_count_and_enough_runs():
    assert required_count(5) == 4.0
    assert CaseStats(passed=[1, 2, 3, 4]).has_enough_runs(required_count(5))
    assert not CaseStats(passed=[1, 2, 3]).has_enough_runs(required_count(5))


def repo_data(passed, flaky):
    stats = {}
    for i in range(passed):
        stats[f"testpassed_{i}"] = STATS["passed"]
    for i in range(flaky):
        stats[f"testflaky_{i}"] = STATS["flaky"]
    return RepoData(config=JobConfig(repo="fakerepo"), test_stats=stats, last_build_start_time=0)


@pytest.mark.parametrize(
    "passed, flaky, above",
    [(197, 6, True), (197, 2, False), (200, 2, False)],
)
def test_flaky_rate_threshold(passed, flaky, above):
    rd = repo_data(passed, flaky)
    assert len(rd.flaky_tests()) == flaky
    assert rd.flaky_rate_above_threshold() is above


def test_empty_repo_data():
    rd = RepoData()
    assert rd.flaky_rate() == 0.0
    assert rd.flaky_rate_above_threshold() is True
    assert rd.flaky_tests() == []


def test_add_suite_and_result_slice():
    rd = RepoData(build_ids=[2, 1])
    suite1 = JunitSuite(name="s")
    suite1.add_test_case(JunitCase(name="T"))
    suite1.add_test_case(JunitCase(name="T/sub", failure="bad"))
    suite2 = JunitSuite(name="s")
    suite2.add_test_case(JunitCase(name="T/sub"))
    rd.add_suite(suite1, 1)
    rd.add_suite(suite2, 2)
    assert list(rd.test_stats) == ["s.T/sub"]
    stats = rd.test_stats["s.T/sub"]
    assert (stats.passed, stats.failed) == ([2], [1])
    assert rd.result_slice_for_test("s.T/sub") == [CaseStatus.PASSED, CaseStatus.FAILED]
    assert rd.flaky_tests() == ["s.T/sub"]
    with pytest.raises(KeyError):
        rd.result_slice_for_test("missing")


def test_to_json_and_artifact(tmp_path):
    rd = RepoData(config=JobConfig(name="job", repo="repo"), build_ids=[3])
    rd.test_stats["s.T"] = CaseStats("s.T", passed=[3])
    path = create_artifact_for_repo(rd, tmp_path)
    assert path == tmp_path / "repo" / "job.json"
    data = json.loads(path.read_text())
    assert data["Config"]["Name"] == "job"
    assert data["TestStats"]["s.T"] == {
        "TestName": "s.T",
        "Passed": [3],
        "Skipped": None,
        "Failed": None,
    }
    assert data["BuildIDs"] == [3]
    assert data["LastBuildStartTime"] is None


SUITE_XML = """<testsuite name="suite">
<testcase name="TestA"><failure>boom</failure></testcase>
<testcase name="TestB"></testcase>
</testsuite>"""


@pytest.fixture
def storage():
    s = InMemoryStorage()
    for build_id, start in ((1, 100), (2, 200)):
        base = f"logs/myjob/{build_id}"
        s.put(BUCKET_NAME, f"{base}/started.json", json.dumps({"timestamp": start}))
        s.put(BUCKET_NAME, f"{base}/finished.json", json.dumps({"timestamp": start + 50}))
        s.put(BUCKET_NAME, f"{base}/artifacts/junit_a.xml", SUITE_XML if build_id == 1 else SUITE_XML.replace("<failure>boom</failure>", ""))
        s.put(BUCKET_NAME, f"{base}/artifacts/junit_empty.xml", "  \n")
        s.put(BUCKET_NAME, f"{base}/artifacts/other.xml", "not xml")
    s.put(BUCKET_NAME, "logs/myjob/3/started.json", json.dumps({"timestamp": 300}))
    return s


def test_latest_finished_builds(storage):
    job = new_job(storage, "myjob", "periodic")
    builds = latest_finished_builds(job, 5)
    assert [b.build_id for b in builds] == [2, 1]
    assert [b.build_id for b in latest_finished_builds(job, 1)] == [2]


def test_finished_build_without_start_time(storage):
    storage.put(BUCKET_NAME, "logs/myjob/4/finished.json", json.dumps({"timestamp": 1}))
    job = new_job(storage, "myjob", "periodic")
    with pytest.raises(RuntimeError, match="Failed parsing start time"):
        latest_finished_builds(job, 5)


def test_combined_results_skips_empty_and_foreign(storage):
    build = new_job(storage, "myjob", "periodic").new_build(1)
    results = combined_results_for_build(build)
    assert len(results) == 1
    assert [s.name for s in results[0].suites] == ["suite"]


def test_collect_test_results(storage):
    config = JobConfig(name="myjob", org="o", repo="r", type="periodic")
    rd = collect_test_results_for_repo(config, storage, 5)
    assert rd.build_ids == [2, 1]
    assert rd.last_build_start_time == 200
    assert rd.flaky_tests() == ["suite.TestA"]
    assert rd.test_stats["suite.TestB"].passed == [2, 1]


def test_collect_missing_job(storage):
    config = JobConfig(name="absent", type="periodic")
    with pytest.raises(FileNotFoundError, match="job path not exist 'absent'"):
        collect_test_results_for_repo(config, storage, 5)