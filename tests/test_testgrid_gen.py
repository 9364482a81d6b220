import pytest
import yaml

from prowkit.testgrid import Config
from prowkit.testgrid_gen import (
    TESTGRID_CONFIG_FILE_HEADER,
    DashboardCollector,
    generate_testgrid_config,
)


def periodic(dashboard, tab, org, branch):
    return {
        "name": tab,
        "annotations": {"testgrid-dashboards": dashboard, "testgrid-tab-name": tab},
        "extra_refs": [{"org": org, "repo": "r", "base_ref": branch}],
    }


def test_main_branch_dashboard_is_grouped_by_org():
    collector = DashboardCollector()
    collector.parse_annotations({"periodics": [periodic("serving", "nightly", "knative", "main")]})
    config = collector.build_config()
    assert [d.name for d in config.dashboards] == ["serving"]
    assert [(g.name, g.dashboard_names) for g in config.dashboard_groups] == [
        ("knative", ["serving"])
    ]


def test_release_branch_dashboard_has_no_group():
    collector = DashboardCollector()
    collector.parse_annotations(
        {"periodics": [periodic("knative-release-1.2", "serving-nightly", "knative", "release-1.2")]}
    )
    config = collector.build_config()
    assert [d.name for d in config.dashboards] == ["knative-release-1.2"]
    assert config.dashboard_groups == []


def test_jobs_without_annotations_or_refs_are_skipped():
    no_refs = periodic("a", "b", "o", "main")
    no_refs["extra_refs"] = []
    no_tab = periodic("c", "d", "o", "main")
    del no_tab["annotations"]["testgrid-tab-name"]
    collector = DashboardCollector()
    collector.parse_annotations({"periodics": [no_refs, no_tab]})
    assert collector.build_config() == Config()


def test_names_are_sorted_and_deduplicated():
    collector = DashboardCollector()
    collector.parse_annotations(
        {
            "periodics": [
                periodic("zeta", "t1", "org2", "main"),
                periodic("alpha", "t2", "org1", "main"),
                periodic("zeta", "t3", "org2", "main"),
                periodic("beta", "t4", "org2", "main"),
            ]
        }
    )
    config = collector.build_config()
    assert [d.name for d in config.dashboards] == ["alpha", "beta", "zeta"]
    assert [(g.name, g.dashboard_names) for g in config.dashboard_groups] == [
        ("org1", ["alpha"]),
        ("org2", ["beta", "zeta"]),
    ]


def test_write_has_header_and_round_trips(tmp_path):
    collector = DashboardCollector()
    collector.parse_annotations({"periodics": [periodic("serving", "nightly", "knative", "main")]})
    out = tmp_path / "config.yaml"
    collector.write(out)
    text = out.read_text()
    assert text.startswith(TESTGRID_CONFIG_FILE_HEADER)
    assert Config.from_dict(yaml.safe_load(text)) == collector.build_config()


def test_generate_walks_directory(tmp_path):
    jobs = tmp_path / "jobs"
    (jobs / "knative").mkdir(parents=True)
    (jobs / "knative" / "serving.yaml").write_text(
        yaml.safe_dump({"periodics": [periodic("serving", "nightly", "knative", "main")]})
    )
    (jobs / "eventing.yaml").write_text(
        yaml.safe_dump({"periodics": [periodic("eventing", "continuous", "knative", "main")]})
    )
    (jobs / "notes.txt").write_text("not: [yaml")
    out = tmp_path / "testgrid.yaml"
    config = generate_testgrid_config(jobs, out)
    assert [d.name for d in config.dashboards] == ["eventing", "serving"]
    assert Config.from_dict(yaml.safe_load(out.read_text())) == config


def test_generate_rejects_bad_yaml(tmp_path):
    jobs = tmp_path / "jobs"
    jobs.mkdir()
    (jobs / "bad.yaml").write_text("periodics: [unclosed")
    with pytest.raises(ValueError, match="error parsing Prow job config"):
        generate_testgrid_config(jobs, tmp_path / "out.yaml")


def test_generate_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        generate_testgrid_config(tmp_path / "nope", tmp_path / "out.yaml")