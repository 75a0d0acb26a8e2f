"""Click subcommands for the switchboard CLI."""
