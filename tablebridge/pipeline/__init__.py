"""Agent text pipeline: token scanning and command dispatch."""

from tablebridge.pipeline.dispatcher import CommandDispatcher, link_body
from tablebridge.pipeline.scanner import Command, CommandKind, CommandScanner, LinkKind

__all__ = [
    "Command",
    "CommandDispatcher",
    "CommandKind",
    "CommandScanner",
    "LinkKind",
    "link_body",
]
