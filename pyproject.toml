[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hxkit"
version = "0.1.0"
description = "Simulated memory manager, radix sort, hashing, profiling, file and task queue utilities"
requires-python = ">=3.10"
dependencies = []
keywords = ["memory", "allocator", "radix-sort", "profiler", "task-queue", "hashing", "fnv1a"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hxkit"]

[tool.pytest.ini_options]
addopts = "-ra"
