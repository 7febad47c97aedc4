[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "loadkali"
version = "0.1.0"
description = "A load testing tool for WebSocket and TCP servers"
requires-python = ">=3.10"
keywords = ["load-testing", "benchmark", "tcp", "websocket", "latency"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Benchmark",
    "Topic :: System :: Networking",
]
dependencies = [
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
loadkali = "loadkali.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["loadkali"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
