[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lnxvfs"
version = "0.1.0"
description = "Storage layer for a page-based virtual filesystem: on-disk layouts, integrity checks, encryption at rest and a managed file directory."
requires-python = ">=3.10"
keywords = ["filesystem", "storage", "pages", "wal", "encryption", "vfs"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]
dependencies = [
    "pycryptodome>=3.18",
    "lz4>=4.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[tool.hatch.build.targets.wheel]
packages = ["lnxvfs"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
