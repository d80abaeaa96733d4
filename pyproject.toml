[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "aptstash"
version = "0.1.0"
description = "Multi-reader buffered streams, virtual file systems and disk helpers for package caches"
requires-python = ">=3.10"
dependencies = []
keywords = ["vfs", "virtual filesystem", "stream", "cache", "tar", "zip"]
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
    "Topic :: System :: Filesystems",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["aptstash"]

[tool.pytest.ini_options]
addopts = "-ra"
