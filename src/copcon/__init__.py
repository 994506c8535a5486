"""
copcon - copy a project's directory tree and file contents in one go.

This package scans a directory, renders its structure as an ASCII tree,
and concatenates the contents of every file not excluded by the built-in
rules, caller-supplied names or a ``.copconignore`` file. The resulting
report is copied to the clipboard (or written to stdout / a file) for easy
LLM context sharing.
"""

__version__ = "0.1.0"
__author__ = "copcon contributors"
