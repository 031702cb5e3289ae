#!/usr/bin/env python3
"""
Command endpoints for the webhook relay.

Each major functionality is handled by a dedicated command class.
"""

from typing import Dict, Type
from .base import BaseCommand
from .runs import RunsCommand
from .monitor import MonitorCommand
from .server import ServerCommand
from .integrations import IntegrationsCommand

# Command registry for easy extension
COMMANDS: Dict[str, Type[BaseCommand]] = {
    'runs': RunsCommand,
    'monitor': MonitorCommand,
    'server': ServerCommand,
    'integrations': IntegrationsCommand,
}


def get_command(command_name: str) -> BaseCommand:
    """Get a command instance by name."""
    if command_name not in COMMANDS:
        available = ', '.join(COMMANDS.keys())
        raise ValueError(f"Unknown command '{command_name}'. Available: {available}")

    command_class = COMMANDS[command_name]
    return command_class()
