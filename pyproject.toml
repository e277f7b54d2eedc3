[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ipfssearch"
version = "0.1.0"
description = "Building blocks for an IPFS search engine: layered configuration, IPFS HTTP API access and DHT provider sniffing."
requires-python = ">=3.10"
keywords = ["ipfs", "search", "dht", "sniffer", "cid", "configuration"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet :: WWW/HTTP :: Indexing/Search",
]
dependencies = [
    "pyyaml",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "responses",
]

[project.scripts]
ipfs-search = "ipfssearch.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["ipfssearch"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
