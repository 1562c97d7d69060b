[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "grpc_middleware"
version = "2.1.0"
description = "Middleware helpers for RPC services: call contexts, metadata, request validation, status codes, backoff helpers and Prometheus-style metrics."
requires-python = ">=3.10"
dependencies = []
keywords = ["grpc", "rpc", "middleware", "interceptor", "metadata", "validation", "prometheus", "metrics", "backoff"]
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
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["grpc_middleware"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
