import logging
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .current import Current

APP_NAME = "ebookledger"

logger = logging.getLogger(APP_NAME)


class Settings(Current, BaseSettings):
    """Configuration for the registry.

    Every field can be set with an ``EBOOKLEDGER_`` prefixed environment variable or in a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix=APP_NAME + "_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_mode: Literal["memory", "sqlite"] = Field(default="memory")
    local_data_path: Path = Field(default=Path("data"))
    """ Directory holding the sqlite database when ``database_mode = 'sqlite'``. """

    system_principal: str = Field(default=APP_NAME)
    """ The registry's own identity. Access can never be granted to or revoked from it. """
    admin_principal: str = Field(default="admin")
    """ The principal for which ``check_admin_access`` is true. """

    cascade_delete: bool = Field(default=False)
    """ If true, deleting a record also removes its access grants and read counter.
    Otherwise they are left behind and stay visible to ``has_access``. """
    strict_maintenance: bool = Field(default=False)
    """ If true, ``set_upload_time`` and ``reset_read_count`` are restricted to the record owner. """

    log_level: str = Field(default="WARNING")

    @property
    def db_path(self) -> Path:
        return self.local_data_path / f"{APP_NAME}.db"
