[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "packetrelay"
version = "0.1.0"
description = "Building blocks for a UDP packet relay: TTL maps, metadata values and symbols, protobuf struct conversions and in-process metrics"
requires-python = ">=3.10"
keywords = ["udp", "proxy", "relay", "metrics", "ttl", "metadata", "protobuf"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
    "Typing :: Typed",
]
dependencies = [
    "protobuf",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["packetrelay"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
