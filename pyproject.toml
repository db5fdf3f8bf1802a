[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mosfs"
version = "0.1.0"
description = "A block-based teaching file system: disk image access, block cache, files and directories, and a request-driven file server"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "block device", "disk image", "file server", "operating systems"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mosfs-check = "mosfs.check:main"

[tool.hatch.build.targets.wheel]
packages = ["mosfs"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
