[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ccbase"
version = "1.0.0b2"
description = "Concurrency building blocks: token buckets, bounded queues, dispatch queues, memory reclamation, timer wheels and worker groups"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "concurrency",
    "queue",
    "timer-wheel",
    "token-bucket",
    "rate-limiting",
    "worker-pool",
    "epoch-reclamation",
    "hazard-pointer",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: POSIX :: Linux",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ccbase"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
