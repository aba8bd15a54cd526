[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ccasim"
version = "0.1.0"
description = "Simulation of a confidential-compute architecture: worlds, granule protection tables and realms"
requires-python = ">=3.10"
dependencies = []
keywords = ["simulation", "granule protection table", "realm", "confidential computing", "memory isolation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ccasim = "ccasim.simulator:main"
ccasim-bench = "ccasim.bench:main"

[tool.hatch.build.targets.wheel]
packages = ["ccasim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
