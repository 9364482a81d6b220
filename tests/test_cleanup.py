import logging

import pytest

from prowkit.cleanup import (
    DEFAULT_PROJECT_REGEX,
    BaseResourceDeleter,
    Options,
    from_resource_files,
    parse_options,
    select_projects,
)


@pytest.fixture
def resources(tmp_path):
    first = tmp_path / "resources_01.yaml"
    first.write_text(
        "resources:\n"
        "- type: gke-project\n"
        "  names:\n"
        "  - knative-boskos-01\n"
        "  - knative-boskos-02\n"
    )
    second = tmp_path / "resources_02.yaml"
    second.write_text(
        "resources:\n"
        "- type: gke-project\n"
        "  names:\n"
        "  - knative-boskos-03\n"
    )
    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    return {"01": str(first), "02": str(second), "empty": str(empty)}


def test_select_projects_given_directly():
    assert select_projects(["foo"], [], "") == ["foo"]


def test_select_projects_from_file(resources):
    got = select_projects([], [resources["01"]], "knative-boskos-.*")
    assert got == ["knative-boskos-01", "knative-boskos-02"]


def test_select_projects_from_multiple_files(resources):
    got = select_projects([], [resources["01"], resources["02"]], "knative-boskos-.*")
    assert got == ["knative-boskos-01", "knative-boskos-02", "knative-boskos-03"]


def test_select_projects_bad_file():
    with pytest.raises(FileNotFoundError):
        select_projects([], ["/foobar_resources_01.yamlfoo"], "")


def test_select_projects_empty_file(resources):
    with pytest.raises(ValueError, match="no project found"):
        select_projects([], [resources["empty"]], ".*")


def test_select_projects_bad_regex(resources):
    with pytest.raises(ValueError, match="invalid regular expression"):
        select_projects([], [resources["01"]], "--->}][{<---")


def test_select_projects_unmatching_regex(resources):
    with pytest.raises(ValueError, match="no project found"):
        select_projects([], [resources["01"]], "foobar-[0-9]")


def test_select_projects_requires_input():
    with pytest.raises(ValueError, match="neither project nor resource file provided"):
        select_projects([], [], "")


def test_select_projects_rejects_both(resources):
    with pytest.raises(ValueError, match="provided both project and resource file"):
        select_projects(["foo"], [resources["01"]], ".*")


def test_from_resource_files_default_regex(resources):
    assert from_resource_files([resources["02"]], DEFAULT_PROJECT_REGEX) == ["knative-boskos-03"]


@pytest.mark.parametrize(
    "projects",
    [
        [],
        ["p1", "p2"],
        ["p1", "p2", "p3", "p4", "p5", "p6", "p7", "p8", "p9", "pA", "pB", "pC", "pD"],
        ["p1e", "p2e", "p3e"],
    ],
)
def test_base_resource_deleter(projects):
    brd = BaseResourceDeleter(projects)
    assert brd.projects == projects
    count, errors = brd.delete(0, 5, True)
    brd.show_stats(count, errors)
    assert count == 0
    if projects:
        assert errors == ["not implemented"]
    else:
        assert errors == []


def test_delete_no_projects_does_not_call():
    calls = []

    def fn(project, hours, dry_run):
        calls.append(project)
        return 0

    brd = BaseResourceDeleter([], delete_func=fn)
    assert brd.delete(9999, 5, True) == (0, [])
    assert calls == []


@pytest.mark.parametrize(
    "projects, expected",
    [
        (["p1", "p2"], 2),
        (["p1", "p2", "p3", "p4", "p5", "p6", "p7", "p8", "p9", "pA", "pB", "pC", "pD"], 13),
    ],
)
def test_delete_counts(projects, expected):
    brd = BaseResourceDeleter(projects, delete_func=lambda p, h, d: 1)
    assert brd.delete(0, 5, True) == (expected, [])


def test_delete_with_errors():
    def fn(project, hours, dry_run):
        raise RuntimeError("error")

    brd = BaseResourceDeleter(["p1e", "p2e", "p3e"], delete_func=fn)
    _, errors = brd.delete(0, 5, True)
    assert errors == ["error"]


def test_delete_keeps_newer_projects():
    def fn(project, hours, dry_run):
        return 0 if int(project[1:]) < hours else 1

    brd = BaseResourceDeleter(["p5", "p7", "p10", "p11", "p12"], delete_func=fn)
    assert brd.delete(10, 5, True) == (3, [])


@pytest.mark.parametrize("dry_run", [True, False])
def test_delete_passes_dry_run(dry_run):
    seen = []

    def fn(project, hours, flag):
        seen.append(flag)
        return 0

    BaseResourceDeleter(["p1"], delete_func=fn).delete(0, 1, dry_run)
    assert seen == [dry_run]


def test_subclass_overrides_delete_resources():
    class Counting(BaseResourceDeleter):
        def delete_resources(self, project, hours_to_keep, dry_run):
            return len(project)

    deleter = Counting(["ab", "cde"])
    assert BaseResourceDeleter.delete(deleter, 0, 2, False) == (5, [])


def test_delete_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        BaseResourceDeleter(["p1"]).delete(0, 0, True)


def test_show_stats_logs(caplog):
    caplog.set_level(logging.INFO, logger="prowkit.cleanup")
    BaseResourceDeleter([]).show_stats(2, ["a", "b"])
    assert "2 resources deleted" in caplog.messages
    assert "2 errors occurred: a, b" in caplog.messages


def test_parse_options_defaults():
    assert parse_options([]) == Options()
    opts = parse_options([])
    assert opts.days_to_keep_images == 365
    assert opts.hours_to_keep_clusters == 720
    assert opts.registry == "gcr.io"
    assert opts.concurrent_operations == 10
    assert opts.re_project_name == "knative-boskos-[a-zA-Z0-9]+"
    assert opts.dry_run is False


def test_parse_options_repeated_flags():
    opts = parse_options(
        ["--project", "a", "-project", "b", "--gcr", "eu.gcr.io", "--dry-run",
         "--days-to-keep-images", "-1"]
    )
    assert opts.project == ["a", "b"]
    assert opts.registry == "eu.gcr.io"
    assert opts.dry_run is True
    assert opts.days_to_keep_images == -1