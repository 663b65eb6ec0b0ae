[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vein_adapter"
version = "0.3.0"
description = "Storage adapters for a RubyGems mirror: an SQLite cache index, a quarantine policy for new gem versions, and atomic filesystem storage"
requires-python = ">=3.10"
dependencies = [
    "semver",
]
keywords = ["rubygems", "cache", "mirror", "sqlite", "quarantine", "storage"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["vein_adapter"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
