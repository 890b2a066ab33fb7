from pathlib import Path
from datetime import datetime, timezone

from pixtrain.setup_directories import (
    setup_output_directories,
    get_model_dir,
    get_report_path,
    get_log_path,
)


def test_setup_output_directories_creates_all(tmp_path):
    dirs = setup_output_directories(tmp_path)

    expected = {"base", "models", "reports", "logs"}

    assert set(dirs.keys()) == expected

    for path in dirs.values():
        assert isinstance(path, Path)
        assert path.exists()
        assert path.is_dir()


def test_setup_output_directories_is_idempotent(tmp_path):
    dirs1 = setup_output_directories(tmp_path)
    dirs2 = setup_output_directories(tmp_path)

    assert dirs1 == dirs2


def test_setup_output_directories_layout(tmp_path):
    dirs = setup_output_directories(tmp_path)
    base = tmp_path.resolve()

    assert dirs["base"] == base
    assert dirs["models"] == base / "models"
    assert dirs["reports"] == base / "reports"
    assert dirs["logs"] == base / "logs"


def test_get_model_dir_creates_directory(tmp_path):
    dirs = setup_output_directories(tmp_path)

    model_dir = get_model_dir(dirs, "tumor_stroma")

    assert model_dir == dirs["models"] / "tumor_stroma"
    assert model_dir.is_dir()


def test_get_report_path_with_timestamp(tmp_path):
    dirs = setup_output_directories(tmp_path)
    ts = datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

    path = get_report_path(dirs, "tumor_stroma", "feature_importance", ".csv", timestamp=ts)

    assert path == dirs["reports"] / "tumor_stroma_feature_importance_20240115_123045.csv"


def test_get_report_path_accepts_iso_string(tmp_path):
    dirs = setup_output_directories(tmp_path)

    path = get_report_path(dirs, "run", "report", "json", timestamp="2024-01-15T12:30:45Z")

    assert path.name == "run_report_20240115_123045.json"


def test_get_log_path(tmp_path):
    dirs = setup_output_directories(tmp_path)

    named = get_log_path(dirs, "tumor_stroma")
    latest = get_log_path(dirs)

    assert named.parent == dirs["logs"]
    assert named.name.startswith("session_tumor_stroma_")
    assert named.suffix == ".log"
    assert latest.name == "session_latest.log"
