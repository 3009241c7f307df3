[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xgfs"
version = "0.1.0"
description = "Inode metadata stores, content sharding, WSGI middleware and mount helpers for a shard-based virtual filesystem"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "filesystem",
    "metadata",
    "inode",
    "sharding",
    "sqlite",
    "garbage-collection",
    "wsgi",
    "rate-limit",
    "fuse",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["xgfs"]

[tool.pytest.ini_options]
addopts = "-ra"
