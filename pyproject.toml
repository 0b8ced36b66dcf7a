[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rainax"
version = "2.0.0"
description = "Download queue core: yt-dlp and direct-file routing, status state machine, yt-dlp output parsing and a local JSON API for browser extensions"
requires-python = ">=3.10"
dependencies = []
keywords = ["download manager", "yt-dlp", "queue", "local api", "browser extension"]
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
    "Topic :: Internet :: WWW/HTTP",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rainax"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
