"""Read, write, inspect and validate WebAssembly binary modules."""

__version__ = "0.1.0"