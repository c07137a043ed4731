[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chatlog"
version = "0.1.0"
description = "Utilities for chat archive tooling: flexible time range parsing, .dat image decoding, LZ4/Zstandard decompression, temp-file snapshots, file monitoring and config defaults"
requires-python = ">=3.10"
keywords = ["chat", "time-range", "dat", "image", "lz4", "zstd", "file-monitor", "config"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]
dependencies = [
    "cryptography",
    "watchdog",
    "zstandard",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["chatlog"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
