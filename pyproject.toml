[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "agbcli"
version = "0.1.0"
description = "Workflows for a cloud image service: Dockerfile image builds, activation, listing, OAuth login and logout."
requires-python = ">=3.10"
dependencies = []
keywords = ["cloud", "images", "oauth", "dockerfile", "polling", "retry"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["agbcli"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
