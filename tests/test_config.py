import pytest

from davkit import config


def test_config_section_inherits():
    cfg = {
        "default": {"davkit_url": "https://h/", "davkit_user": "jane"},
        "work": {"inherits": "default", "davkit_url": "https://work/"},
        "late": {"inherits": "work", "davkit_pass": "x"},
    }
    assert config.config_section(cfg, "late") == {
        "davkit_url": "https://work/",
        "davkit_user": "jane",
        "davkit_pass": "x",
    }
    assert config.config_section(cfg, "missing") == {}


def test_config_section_inheritance_loop():
    cfg = {"a": {"inherits": "b", "x": 1}, "b": {"inherits": "a", "y": 2}}
    assert config.config_section(cfg, "a") == {"x": 1, "y": 2}


def test_read_json(tmp_path):
    fn = tmp_path / "davkit.json"
    fn.write_text('{"default": {"davkit_url": "https://h/"}}')
    assert config.read_config(str(fn)) == {"default": {"davkit_url": "https://h/"}}


def test_read_yaml(tmp_path):
    pytest.importorskip("yaml")
    fn = tmp_path / "davkit.yaml"
    fn.write_text("default:\n  davkit_url: https://h/\n")
    assert config.read_config(str(fn)) == {"default": {"davkit_url": "https://h/"}}


def test_read_missing(tmp_path):
    assert config.read_config(str(tmp_path / "nothing.conf")) == {}


def test_default_locations(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert config.read_config(None) is None
    cfgdir = tmp_path / ".config" / "davkit"
    cfgdir.mkdir(parents=True)
    (cfgdir / "davkit.json").write_text('{"default": {"davkit_url": "https://json/"}}')
    assert config.read_config(None) == {"default": {"davkit_url": "https://json/"}}
    (cfgdir / "davkit.conf").write_text('{"default": {"davkit_url": "https://conf/"}}')
    assert config.read_config(None) == {"default": {"davkit_url": "https://conf/"}}
