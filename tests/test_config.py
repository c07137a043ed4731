import json
import os
from dataclasses import dataclass, field

import pytest

from chatlog.config import (
    DEFAULT_CONFIG_TYPE,
    Config,
    ConfigError,
    InvalidDirectoryError,
    MissingConfigNameError,
    prepare_dir,
)


@dataclass
class ServerConf:
    host: str = field(default="", metadata={"default": "localhost"})


@dataclass
class AppConf:
    name: str = field(default="", metadata={"default": "chatlog"})
    port: int = field(default=0, metadata={"default": "5030"})
    server: ServerConf = field(default_factory=ServerConf)


def _config(tmp_path):
    return Config("app", "", str(tmp_path / "cfg"))


def test_missing_name_raises(tmp_path):
    with pytest.raises(MissingConfigNameError):
        Config("", "", str(tmp_path))


def test_default_type_and_directory(tmp_path):
    cfg = _config(tmp_path)
    assert cfg.config_type == DEFAULT_CONFIG_TYPE
    assert os.path.isdir(tmp_path / "cfg")
    assert cfg.config_file == os.path.join(str(tmp_path / "cfg"), "app." + DEFAULT_CONFIG_TYPE)


def test_default_path_under_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    cfg = Config("app")
    assert cfg.path == str(tmp_path) + os.sep + ".app"
    assert os.path.isdir(cfg.path)


def test_path_that_is_a_file_raises(tmp_path):
    target = tmp_path / "file"
    target.write_text("x")
    with pytest.raises(InvalidDirectoryError):
        Config("app", "", str(target))


def test_load_creates_missing_file_with_defaults(tmp_path):
    cfg = _config(tmp_path)
    conf = cfg.load(AppConf)
    assert conf == AppConf(name="chatlog", port=5030, server=ServerConf(host="localhost"))
    with open(cfg.config_file, encoding="utf-8") as handle:
        assert json.load(handle) == {}


def test_load_reads_keys_case_insensitively(tmp_path):
    cfg = _config(tmp_path)
    with open(cfg.config_file, "w", encoding="utf-8") as handle:
        json.dump({"Name": "mine", "PORT": 1, "Server": {"HOST": "example.com"}}, handle)
    conf = cfg.load(AppConf)
    assert conf == AppConf(name="mine", port=1, server=ServerConf(host="example.com"))
    assert cfg.as_dict() == {"name": "mine", "port": 1, "server": {"host": "example.com"}}


def test_load_rejects_unreadable_existing_file(tmp_path):
    cfg = _config(tmp_path)
    with open(cfg.config_file, "w", encoding="utf-8") as handle:
        handle.write("{not json")
    with pytest.raises(ConfigError):
        cfg.load(AppConf)


def test_load_requires_dataclass_type(tmp_path):
    with pytest.raises(TypeError):
        _config(tmp_path).load(dict)


def test_set_persists_nested_key(tmp_path):
    cfg = _config(tmp_path)
    cfg.load(AppConf)
    cfg.set("server.Host", "example.com")
    assert cfg.as_dict() == {"server": {"host": "example.com"}}

    again = _config(tmp_path)
    conf = again.load(AppConf)
    assert conf.server.host == "example.com"
    assert conf.name == "chatlog"


def test_as_dict_is_a_copy(tmp_path):
    cfg = _config(tmp_path)
    cfg.set("server.host", "example.com")
    snapshot = cfg.as_dict()
    snapshot["server"]["host"] = "changed"
    assert cfg.as_dict() == {"server": {"host": "example.com"}}


def test_reset_empties_configuration(tmp_path):
    cfg = _config(tmp_path)
    cfg.set("port", 9)
    cfg.reset()
    assert cfg.as_dict() == {}
    with open(cfg.config_file, encoding="utf-8") as handle:
        assert json.load(handle) == {}


def test_load_file_reads_given_file(tmp_path):
    cfg = _config(tmp_path)
    other = tmp_path / "other.json"
    other.write_text(json.dumps({"port": 77}))
    conf = cfg.load_file(str(other), AppConf)
    assert conf.port == 77
    assert conf.name == "chatlog"
    cfg.set("name", "written")
    assert json.loads(other.read_text()) == {"port": 77, "name": "written"}


def test_load_file_missing_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        _config(tmp_path).load_file(str(tmp_path / "absent.json"), AppConf)


def test_load_file_unsupported_type_raises(tmp_path):
    other = tmp_path / "other.yaml"
    other.write_text("port: 1\n")
    with pytest.raises(ConfigError):
        _config(tmp_path).load_file(str(other), AppConf)


def test_prepare_dir_creates_nested(tmp_path):
    target = tmp_path / "a" / "b"
    prepare_dir(str(target))
    assert target.is_dir()
    prepare_dir(str(target))
    assert target.is_dir()


def test_prepare_dir_rejects_file(tmp_path):
    target = tmp_path / "plain"
    target.write_text("x")
    with pytest.raises(InvalidDirectoryError):
        prepare_dir(str(target))