"""Command line interface (`hrsync` / `python -m hrsync.cli`)."""
