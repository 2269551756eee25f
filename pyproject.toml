[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flashup"
version = "0.1.0"
description = "Firmware and OTA updater for serial and network devices"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
    "pyserial",
]
keywords = ["firmware", "ota", "updater", "serial", "embedded", "flashing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
flashup = "flashup.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["flashup"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
