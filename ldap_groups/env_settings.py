from functools import lru_cache

from pydantic_settings import BaseSettings
from pydantic import Field


class EnvSettings(BaseSettings):
    log_level: str = Field("INFO", alias="LDAP_GROUPS_LOG_LEVEL")
    log_dir: str = Field("data/logs", alias="LDAP_GROUPS_LOG_DIR")
    log_retention_days: int = Field(30, alias="LDAP_GROUPS_LOG_RETENTION_DAYS")

    # Keeps the service password out of provider property files.
    bind_password: str = Field("", alias="LDAP_GROUPS_BIND_PASSWORD")

    class Config:
        populate_by_name = True


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
