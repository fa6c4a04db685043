[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "streamflow"
version = "0.1.0"
description = "Lazy data streams, backpressure-aware channels and an asynchronous buffered writer"
requires-python = ">=3.10"
dependencies = []
keywords = ["stream", "pipeline", "backpressure", "channel", "async writer", "concurrency"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["streamflow"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
