"""Ralph: agent-driven development loop with detached daemons and isolated workspaces."""

__version__ = "0.4.0"
