"""Prompt workbench: placeholder expansion, a C# symbol index and streaming chat completions."""

__version__ = "0.1.0"
