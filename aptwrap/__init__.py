"""
aptwrap - Supervised apt/dpkg execution

Runs the Debian package tools non-interactively, featuring:
- Waiting for the dpkg/apt locks held by other processes
- Streaming progress events decoded from apt output
- Modern CLI with short aliases
"""

__version__ = "0.1.0"
__author__ = "aptwrap contributors"
