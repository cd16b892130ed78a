[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dipgauge"
version = "0.1.0"
description = "Application metrics with pluggable outputs (text streams, logging, in-memory maps, graphite, statsd, prometheus push), plus proxies, background queues and scheduled flushing."
requires-python = ">=3.10"
dependencies = []
keywords = ["metrics", "monitoring", "statsd", "graphite", "prometheus", "instrumentation"]
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
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dipgauge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
