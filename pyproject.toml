[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "edgeserve"
version = "0.6.0"
description = "A small readiness-driven HTTP server with a worker thread pool, connection timers and asynchronous file logging"
requires-python = ">=3.10"
keywords = ["http", "server", "selectors", "thread-pool", "logging", "static-files"]
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
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
edgeserve = "edgeserve.server:main"

[tool.hatch.build.targets.wheel]
packages = ["edgeserve"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
