[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "distlab"
version = "0.1.0"
description = "Distributed-systems toolkit: a linearizability checker, a checked value encoding and a small MapReduce framework"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "mapreduce",
    "linearizability",
    "distributed-systems",
    "serialization",
    "testing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mrcoordinator = "distlab.coordinator:main"
mrworker = "distlab.cli:worker_main"
mrsequential = "distlab.cli:sequential_main"

[tool.hatch.build.targets.wheel]
packages = ["distlab"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
