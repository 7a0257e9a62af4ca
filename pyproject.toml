[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "depvet"
version = "0.1.0"
description = "Check crate sources against a dependency policy and load and validate the policy's configuration"
requires-python = ">=3.11"
keywords = ["dependencies", "crates", "licenses", "sources", "policy", "audit", "spdx"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Typing :: Typed",
    "Topic :: Software Development :: Quality Assurance",
]
dependencies = [
    "semver",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["depvet"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"
