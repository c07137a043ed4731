import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from chatlog import defaults
from chatlog.defaults import set_default, set_default_tag


@dataclass
class Inner:
    label: str = field(default="", metadata={"default": "inner"})
    count: int = field(default=0, metadata={"default": "3"})


@dataclass
class Settings:
    host: str = field(default="", metadata={"default": "localhost"})
    port: int = field(default=0, metadata={"default": "8080"})
    ratio: float = field(default=0.0, metadata={"default": "0.5"})
    debug: bool = field(default=False, metadata={"default": "true"})
    tags: List[str] = field(default_factory=list, metadata={"default": '["a", "b"]'})
    limits: Dict[str, int] = field(default_factory=dict, metadata={"default": '{"x": 1}'})
    inner: Inner = field(default_factory=Inner)
    tagged_inner: Inner = field(default_factory=Inner,
                                metadata={"default": '{"label": "from-json"}'})
    maybe: Optional[Inner] = field(default=None, metadata={"default": '{"count": 7}'})
    items: List[Inner] = field(default_factory=list,
                               metadata={"default": '[{"label": "a"}]'})
    plain: str = ""
    _hidden: int = field(default=0, metadata={"default": "5"})


@dataclass
class Broken:
    port: int = field(default=0, metadata={"default": "eighty"})
    flag: bool = field(default=False, metadata={"default": "maybe"})
    numbers: List[int] = field(default_factory=list, metadata={"default": '["x"]'})
    inner: Inner = field(default_factory=Inner, metadata={"default": "{not json"})


@dataclass
class Holder:
    payload: Any = None


@dataclass(frozen=True)
class Frozen:
    name: str = field(default="", metadata={"default": "frozen-name"})


@dataclass
class Custom:
    name: str = field(default="", metadata={"fallback": "custom"})


def _single_field(type_, tag):
    cls = dataclasses.make_dataclass(
        "Single", [("value", type_, field(default=type_(), metadata={"default": tag}))]
    )
    return cls()


def test_simple_fields_take_their_defaults():
    settings = set_default(Settings())
    assert settings.host == "localhost"
    assert settings.port == 8080
    assert settings.ratio == 0.5
    assert settings.debug is True
    assert settings.plain == ""


def test_json_defaults_for_containers():
    settings = set_default(Settings())
    assert settings.tags == ["a", "b"]
    assert settings.limits == {"x": 1}


def test_nested_zero_struct_gets_field_defaults():
    settings = set_default(Settings())
    assert settings.inner == Inner(label="inner", count=3)


def test_tagged_struct_is_decoded_then_filled():
    settings = set_default(Settings())
    assert settings.tagged_inner == Inner(label="from-json", count=3)


def test_optional_is_decoded_without_filling():
    settings = set_default(Settings())
    assert settings.maybe == Inner(label="", count=7)


def test_list_elements_from_json_are_filled():
    settings = set_default(Settings())
    assert settings.items == [Inner(label="a", count=3)]


def test_private_fields_are_left_alone():
    settings = set_default(Settings())
    assert settings._hidden == 0


def test_existing_values_are_kept():
    given = Settings(host="example.com", port=1, tags=["z"], limits={"y": 2},
                     maybe=Inner(label="kept", count=0))
    settings = set_default(given)
    assert settings is given
    assert settings.host == "example.com"
    assert settings.port == 1
    assert settings.tags == ["z"]
    assert settings.limits == {"y": 2}
    assert settings.maybe == Inner(label="kept", count=0)


def test_existing_list_elements_are_filled():
    settings = set_default(Settings(items=[Inner()]))
    assert settings.items == [Inner(label="inner", count=3)]


def test_partially_set_struct_is_filled():
    settings = set_default(Settings(tagged_inner=Inner(label="set", count=0)))
    assert settings.tagged_inner == Inner(label="set", count=3)


def test_unparseable_defaults_are_ignored():
    broken = set_default(Broken())
    assert broken.port == 0
    assert broken.flag is False
    assert broken.numbers == []
    assert broken.inner == Inner(label="", count=0)


def test_any_field_holding_dataclass_is_filled():
    holder = set_default(Holder(payload=Inner()))
    assert holder.payload == Inner(label="inner", count=3)


def test_frozen_dataclass_is_untouched():
    assert set_default(Frozen()).name == ""


def test_none_is_returned_unchanged():
    assert set_default(None) is None


def test_non_dataclass_is_returned_unchanged():
    data = {"host": ""}
    assert set_default(data) == {"host": ""}


def test_set_default_tag_changes_lookup_key():
    try:
        set_default_tag("fallback")
        assert defaults.DEFAULT_TAG == "fallback"
        assert set_default(Custom()).name == "custom"
        assert set_default(Inner()) == Inner(label="", count=0)
    finally:
        set_default_tag("default")
    assert set_default(Custom()).name == ""


@pytest.mark.parametrize("tag, expected", [
    ("1", True), ("t", True), ("T", True), ("TRUE", True), ("True", True),
    ("0", False), ("f", False), ("FALSE", False), ("yes", False),
])
def test_bool_parsing(tag, expected):
    assert set_default(_single_field(bool, tag)).value is expected


@pytest.mark.parametrize("tag, expected", [
    ("42", 42), ("-12", -12), ("+7", 7), ("1.5", 0), ("99999999999999999999", 0),
])
def test_int_parsing(tag, expected):
    assert set_default(_single_field(int, tag)).value == expected


@pytest.mark.parametrize("tag, expected", [("2.25", 2.25), ("-1", -1.0), ("abc", 0.0)])
def test_float_parsing(tag, expected):
    assert set_default(_single_field(float, tag)).value == expected