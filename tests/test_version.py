import platform

from chatlog.version import VERSION, get_more


def test_get_more_summary_line():
    text = get_more(False)
    assert text.startswith(f"version {VERSION} ")
    assert text.endswith("\n")
    assert text.count("\n") == 1
    assert f"python{platform.python_version()}" in text


def test_get_more_build_details_are_indented():
    text = get_more(True)
    assert text.endswith("\n")
    lines = text[:-1].split("\n")
    assert len(lines) > 1
    assert all(line.startswith("\t") for line in lines)
    assert any("chatlog" in line for line in lines)


def test_get_more_details_differ_from_summary():
    assert get_more(True).startswith("\t")
    assert get_more(False).startswith("version")