# prowkit

A library for working with Prow CI jobs and their results:

- **JUnit results** – parse, build and write JUnit XML (`prowkit.junit`).
- **Build storage layout** – find jobs, builds, start/finish times and
  artifacts in a bucket-style store (`prowkit.prow`), with an in-memory
  store (`InMemoryStorage`).
- **Prow environment** – read the variables a Prow job sets
  (`prowkit.prow_env.get_env_config`).
- **Flaky-test reporting** – gather per-test results over recent builds,
  decide which tests are flaky and write JSON reports
  (`prowkit.flaky_config`, `prowkit.flaky_result`, `prowkit.jsonreport`,
  `prowkit.flaky_json`).
- **TestGrid** – read TestGrid configs, find tab URLs and generate the
  dashboard config from Prow job annotations (`prowkit.testgrid`,
  `prowkit.testgrid_gen`).
- **Periodic job schedules** – stable, hash-based cron lines and TestGrid
  annotations for jobs (`prowkit.configgen`).
- **Slack** – post messages and read channel history (`prowkit.slack`),
  plus an in-memory fake (`prowkit.fake_slack`).
- **Resource cleanup** – select projects and run deletions concurrently with
  a bounded number of workers (`prowkit.cleanup`).
- **Artifact metadata** – a string key/value store kept as `metadata.json`
  (`prowkit.metautil`).

Python 3.10 or later is required. The only dependency is PyYAML.

## JUnit results

```python
from prowkit.junit import unmarshal, create_xml_error_msg, CaseStatus

with open("junit_results.xml", "rb") as fh:
    suites = unmarshal(fh.read())
for suite in suites.suites:
    for case in suite.test_cases:
        if case.status() is CaseStatus.FAILED:
            print(suite.name, case.name)

# Write a one-case failure report for a step that produced no results.
create_xml_error_msg("setup", "TestSetup", "cluster creation failed", "junit_setup.xml")
```

`unmarshal` accepts both a `<testsuites>` document and a single
`<testsuite>`; the latter comes back wrapped in a `JunitSuites` holding one
suite. Malformed XML raises `ValueError`.

## Jobs and builds

```python
from prowkit.prow import InMemoryStorage, new_job

storage = InMemoryStorage()
storage.put("knative-prow", "logs/ci-serving-continuous/12/started.json", '{"timestamp": 100}')
storage.put("knative-prow", "logs/ci-serving-continuous/12/finished.json", '{"timestamp": 200}')

job = new_job(storage, "ci-serving-continuous", "periodic", "knative", "serving", 0)
print(job.storage_path)            # logs/ci-serving-continuous

for build in job.latest_builds(5):
    print(build.build_id, build.start_time, build.artifacts())
```

Job types are `periodic`, `postsubmit`, `presubmit` and `batch`; any other
type raises `UnknownJobTypeError`. Any object with the methods of the
`StorageClient` protocol can take the place of `InMemoryStorage`.

## Flaky tests

```python
from prowkit.flaky_config import load_job_configs
from prowkit.flaky_result import collect_test_results_for_repo, create_artifact_for_repo
from prowkit.flaky_json import write_flaky_tests_to_json

repo_data_all = []
for job_config in load_job_configs("config/config.yaml"):
    repo_data = collect_test_results_for_repo(job_config, storage, 5)
    create_artifact_for_repo(repo_data, "artifacts")
    repo_data_all.append(repo_data)

reports = write_flaky_tests_to_json(repo_data_all)
```

A test is flaky when it both failed and passed among the scanned builds.
`RepoData.flaky_rate_above_threshold()` tells when more than five tests, or
more than 1% of them, are flaky. `FakeJSONClient` keeps reports in memory
instead of writing files.

## Schedules for periodic jobs

```python
from prowkit.configgen import generate_cron

print(generate_cron("knative", "eventing", "main", "nightly", 120))
```

The minute and hour offsets come from an FNV-1a hash of the org, repo,
branch and job name, so the same job always gets the same schedule while
different jobs are spread over the day. `add_schedule` and
`add_annotations` apply this, and the TestGrid annotations, to a
`JobsConfig`.

## TestGrid

```python
from prowkit.testgrid import get_testgrid_tab_url
from prowkit.testgrid_gen import generate_testgrid_config

url = get_testgrid_tab_url("continuous_serving_main_periodic", ["exclude-non-failed-tests=20"])
generate_testgrid_config("prow/jobs", "testgrid.yaml")
```

## Slack

```python
from prowkit.slack import WriteClient

client = WriteClient("Testgrid Robot", "/secrets/slack-token")
client.post("All tests passed", "C0123456")
```

Errors reported by Slack raise `SlackError`.

## Cleanup

```python
from prowkit.cleanup import BaseResourceDeleter, select_projects

projects = select_projects([], ["resources.yaml"], "knative-boskos-[a-zA-Z0-9]+")
deleter = BaseResourceDeleter(projects, delete_func=lambda project, hours, dry_run: 0)
count, errors = deleter.delete(720, 10, True)
deleter.show_stats(count, errors)
```

Either explicit projects or resource files must be given, not both; a
`ValueError` is raised when neither is given or when no project matches.

## What this package does not do

- It has no client for a real cloud storage service; jobs and builds are read
  through `InMemoryStorage` or any object you supply with the
  `StorageClient` methods.
- `prowkit.cleanup` deletes no images or clusters by itself:
  `BaseResourceDeleter.delete_resources` raises `NotImplementedError`, and
  the actual deletion must come from a subclass or a `delete_func`.
- It installs no console commands; `prowkit.cleanup.parse_options` parses
  arguments but nothing runs a cleanup from the command line.
- It does not create or update GitHub issues, and it has no database
  helpers.
- `prowkit.configgen` works on `JobsConfig` objects; it does not read job
  spec files or write full Prow job configurations.

## Running the tests

Install the `test` extra and run `pytest` from the project root.