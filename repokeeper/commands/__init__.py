"""Click commands for repokeeper, one module per command or group."""
