from .loader import ConfigurationError, Credentials, SyncConfig, load_config, resolve_credentials

__all__ = [
    "ConfigurationError",
    "Credentials",
    "SyncConfig",
    "load_config",
    "resolve_credentials",
]
