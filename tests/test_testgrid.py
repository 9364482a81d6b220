import pytest
import yaml

from prowkit.testgrid import (
    BASE_URL,
    Config,
    Dashboard,
    DashboardGroup,
    DashboardTab,
    get_testgrid_tab_url,
)


def sample_config():
    return Config(
        dashboards=[
            Dashboard("serving", [DashboardTab("continuous", "ci-serving-continuous")]),
            Dashboard("empty"),
        ],
        dashboard_groups=[DashboardGroup("knative", ["serving", "empty"])],
    )


def test_tab_url_with_filter():
    url = get_testgrid_tab_url("continuous_serving_main_periodic", ["exclude-non-failed-tests=20"])
    assert url == BASE_URL + "/serving#continuous&exclude-non-failed-tests=20"


def test_tab_url_without_filters():
    url = get_testgrid_tab_url("kourier-stable-serving_main_periodic", [])
    assert url == BASE_URL + "/serving#kourier-stable"


def test_tab_url_unknown_job():
    with pytest.raises(LookupError) as info:
        get_testgrid_tab_url("nope", [])
    assert "nope" in str(info.value)


def test_get_tab_rel_url():
    assert sample_config().get_tab_rel_url("ci-serving-continuous") == "serving#continuous"


def test_get_tab_rel_url_missing():
    with pytest.raises(LookupError):
        sample_config().get_tab_rel_url("missing-group")


def test_dict_round_trip():
    config = sample_config()
    assert Config.from_dict(config.to_dict()) == config


def test_to_dict_omits_empty_tabs():
    data = sample_config().to_dict()
    assert "dashboard_tab" not in data["dashboards"][1]
    assert data["dashboard_groups"][0]["dashboard_names"] == ["serving", "empty"]


def test_from_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(sample_config().to_dict()))
    assert Config.from_file(path) == sample_config()


def test_from_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert Config.from_file(path) == Config()


def test_from_file_missing(tmp_path):
    with pytest.raises(OSError):
        Config.from_file(tmp_path / "absent.yaml")


def test_from_dict_rejects_non_mapping():
    with pytest.raises(ValueError):
        Config.from_dict(["dashboards"])