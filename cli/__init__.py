"""Command line subcommands for qrprep."""
