[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wasmbin"
version = "0.1.0"
description = "Read, write, inspect and validate WebAssembly binary modules"
requires-python = ">=3.10"
dependencies = []
keywords = ["webassembly", "wasm", "binary", "leb128", "validation", "decoder", "encoder"]
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
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["wasmbin"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
