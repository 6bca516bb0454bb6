"""
Settings dependency

Settings are read from the environment and .env once per process.
"""
from functools import lru_cache

from fastapi import Depends
from typing import Annotated

from settings import Settings


@lru_cache()
def _load_settings() -> Settings:
    return Settings()


async def get_settings() -> Settings:
    return _load_settings()


SettingsDepends = Annotated[Settings, Depends(get_settings)]
