"""Runtime module for spawning child processes with pollable stdio.

This module provides the process builder, the child process handle and the
pipe endpoints that expose the child's stdin/stdout/stderr to event loops.
"""

from __future__ import annotations

from .builder import LaunchSpec, ProcessBuilder, spawn
from .endpoint import PipeEndpoint
from .process import ChildProcess, ExitStatus, ProcessHandle

__all__ = [
    "ChildProcess",
    "ExitStatus",
    "LaunchSpec",
    "PipeEndpoint",
    "ProcessBuilder",
    "ProcessHandle",
    "spawn",
]
