"""Tests for config loader functionality."""

import os
import pytest
import tempfile
import yaml

from gradecurve.libs.config_loader import (
    get_config,
    load_configs,
    load_default_configs,
    merge_configs,
)


def test_load_multiple_configs_merge():
    """Test that later rubric files override and extend earlier ones."""
    rubric = {
        "templates": {"full": "@a, +4, b 1, c 2"},
        "curve": {"min_mean": 2.5, "max_mean": 3.3, "target_mean": 3.0},
    }
    local = {
        "curve": {"actual": {"A": 90, "F": 0}},
    }

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f1:
        yaml.dump(rubric, f1)
        temp_path1 = f1.name

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f2:
        yaml.dump(local, f2)
        temp_path2 = f2.name

    try:
        result = load_configs(temp_path1, temp_path2)
        assert result["templates"] == {"full": "@a, +4, b 1, c 2"}
        assert result["curve"] == {
            "min_mean": 2.5, "max_mean": 3.3, "target_mean": 3.0,
            "actual": {"A": 90, "F": 0},
        }
    finally:
        os.unlink(temp_path1)
        os.unlink(temp_path2)


def test_merge_replaces_non_dict_values():
    """Test that lists and scalars are replaced rather than merged."""
    orig = {"weights": {"Q1": 1, "Q2": 2}, "sub": ["x", "y"]}
    new = {"weights": {"Q2": 3}, "sub": ["z"]}
    assert merge_configs(orig, new) == {"weights": {"Q1": 1, "Q2": 3}, "sub": ["z"]}
    assert orig["weights"]["Q2"] == 2


def test_load_missing_file():
    """Test that missing files are skipped with warning."""
    config_data = {"grading": {"exam_glob": "exam-*.tex"}}

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        yaml.dump(config_data, f)
        temp_path = f.name

    try:
        result = load_configs(temp_path, "nonexistent.yaml")
        assert result == config_data
    finally:
        os.unlink(temp_path)


def test_no_configs_loaded():
    """Test that ValueError is raised when no configs are loaded."""
    with pytest.raises(ValueError, match="No configs loaded"):
        load_configs("nonexistent1.yaml", "nonexistent2.yaml")


def test_invalid_yaml_type():
    """Test that TypeError is raised for non-dict YAML."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write("just a string, not a dict")
        temp_path = f.name

    try:
        with pytest.raises(TypeError, match="must be a dict"):
            load_configs(temp_path)
    finally:
        os.unlink(temp_path)


def test_get_config():
    """Test getting config values by dot-separated key."""
    config = {
        "grading": {
            "exam_glob": "exam-*.tex",
            "min_mc_cohort": 4,
        },
        "logging": {"level": "INFO"}
    }

    assert get_config("grading.exam_glob", config) == "exam-*.tex"
    assert get_config("grading.min_mc_cohort", config) == 4
    assert get_config("logging.level", config) == "INFO"

    with pytest.raises(KeyError):
        get_config("nonexistent.key", config)

    with pytest.raises(KeyError):
        get_config("grading.exam_glob.deeper", config)


def test_get_config_default():
    """Test that a default is returned instead of raising."""
    config = {"grading": {"exam_glob": "exam-*.tex"}}
    assert get_config("grading.annotation_marker", config, default="%") == "%"
    assert get_config("grading.exam_glob.deeper", config, default=None) is None


def test_load_default_configs_integration():
    """Test loading the shipped default config."""
    project_root = os.path.dirname(os.path.dirname(__file__))
    default_config_path = os.path.join(project_root, "config", "default.yaml")

    if os.path.exists(default_config_path):
        config = load_default_configs()
        assert get_config("grading.annotation_marker", config) == "%"
        assert get_config("grading.valid_flags", config) == "saAXiIrReEfFbtpPwWhHd"
