[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "humrt"
version = "0.1.0"
description = "Runtime core for .hum pieces: parsing, pipe expansion, reconciliation and scsynth control over OSC"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "scsynth",
    "supercollider",
    "osc",
    "live-coding",
    "synthesis",
    "music",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Multimedia :: Sound/Audio :: Sound Synthesis",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["humrt"]

[tool.hatch.build.targets.sdist]
include = [
    "humrt",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
