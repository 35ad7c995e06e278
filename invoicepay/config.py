"""Service settings read from a dotenv file and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Union

from dotenv import dotenv_values

_DEFAULT_DB_PASSWORD = "password"


@dataclass(frozen=True)
class Config:
    """Connection and messaging settings for the service."""

    db_host: str = "localhost"
    db_port: str = "5432"
    db_user: str = "postgres"
    db_password: str = _DEFAULT_DB_PASSWORD
    db_name: str = "freelanceX_invoice_service"
    port: str = "50051"
    kafka_broker: str = "localhost:9092"
    invoice_kafka_topic: str = "invoice-events"

    def dsn(self) -> str:
        """Return the database connection string."""
        return (
            f"host={self.db_host} port={self.db_port} user={self.db_user} "
            f"password={self.db_password} dbname={self.db_name} sslmode=disable"
        )


# Each setting is read from the environment variable named after its field
# in upper case, e.g. ``db_host`` from ``DB_HOST``.
_ENV_KEYS = {field.name: field.name.upper() for field in fields(Config)}


def load_config(env_file: Union[str, os.PathLike] = ".env") -> Config:
    """Load settings from ``env_file``; process environment variables win.

    Raises FileNotFoundError when the dotenv file does not exist.
    """
    path = Path(env_file)
    if not path.is_file():
        raise FileNotFoundError(f"error loading env file: {path}")
    lookup: dict[str, str] = {
        key: value for key, value in dotenv_values(path).items() if value is not None
    }
    lookup.update(os.environ)
    return _from_mapping(lookup)


def _from_mapping(lookup: Mapping[str, str]) -> Config:
    found = {field: lookup[key] for field, key in _ENV_KEYS.items() if key in lookup}
    return Config(**found)