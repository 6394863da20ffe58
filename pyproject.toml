[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "trex"
version = "0.1.0"
description = "Microservice runtime skeleton: environments, health check and metrics servers, request logging and metrics middleware, and a project cloning tool"
requires-python = ">=3.10"
dependencies = []
keywords = ["microservice", "template", "wsgi", "metrics", "healthcheck", "prometheus"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
trex = "trex.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["trex"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
