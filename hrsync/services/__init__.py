"""Sync services: lookups, value mapping, row processing, batch orchestration."""
