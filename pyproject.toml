[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kernelsim"
version = "0.1.0"
description = "A small operating-system kernel simulator with a UDP file-system server"
requires-python = ">=3.10"
dependencies = []
keywords = ["operating systems", "scheduler", "simulation", "round robin", "udp", "file server"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kernelsim = "kernelsim.kernel:main"
kernelsim-sfss = "kernelsim.server:main"

[tool.hatch.build.targets.wheel]
packages = ["kernelsim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
