[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "proxyemu"
version = "0.1.0"
description = "In-process host emulator for unit testing proxy filter plugins built on VM, plugin and stream contexts"
requires-python = ">=3.10"
dependencies = []
keywords = ["proxy", "filter", "plugin", "emulator", "testing", "http", "tcp"]
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
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["proxyemu"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
