import os

_SETTINGS_MODULES = {
    "dev": "config.development",
    "development": "config.development",
    "test": "config.testing",
    "testing": "config.testing",
    "prod": "config.production",
    "production": "config.production",
}


def get_settings_module() -> str:
    """Settings module for ``APP_ENV``; development when it is unset."""

    env = (os.getenv("APP_ENV") or "development").strip().lower()
    try:
        return _SETTINGS_MODULES[env]
    except KeyError:
        raise RuntimeError(
            f"Unknown APP_ENV {env!r}; expected one of: {', '.join(sorted(_SETTINGS_MODULES))}"
        ) from None
