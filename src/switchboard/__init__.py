"""switchboard — multi-tenant supervisor for agent CLI subprocesses."""

__version__ = "0.1.0"
