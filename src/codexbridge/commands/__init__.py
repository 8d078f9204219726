"""Click subcommands for the codexbridge CLI."""
