"""MongoDB connection configuration and client provider."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, fields
from typing import Any

from pymongo import MongoClient

from docmapper.base import ConfigError

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "yes", "1", "on")
_FALSE_VALUES = ("false", "no", "0", "off")


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class MongoConfig:
    """Where and how docmapper connects to MongoDB.

    Either give a full ``connection_string`` or let one be built from the
    individual fields. Every field ends up in the URI or in ``MongoClient``
    options; ``database`` selects the database storages work in.

    Attributes:
        host: Server host name.
        port: Server port.
        database: Database holding the mapped collections.
        username: User to authenticate as, if any.
        password: Password for ``username``.
        auth_source: Database the user is defined in.
        replica_set: Replica set to join, if any.
        tls: Connect over TLS.
        read_preference: ``readPreference`` URI option.
        write_concern: ``w`` URI option.
        app_name: ``appName`` reported to the server.
        server_selection_timeout: Seconds to wait for a server.
        connection_string: Full URI, replacing the host, credential and
            URI option fields.
    """

    host: str = "localhost"
    port: int = 27017
    database: str = ""
    username: str | None = None
    password: str | None = None
    auth_source: str = "admin"
    replica_set: str | None = None
    tls: bool = False
    read_preference: str = "primary"
    write_concern: str = "1"
    app_name: str = "docmapper"
    server_selection_timeout: float = 30.0
    connection_string: str | None = None

    def validate(self) -> None:
        """Check the configuration.

        Raises:
            ConfigError: If the configuration cannot be used.
        """
        if not self.database:
            raise ConfigError("Database name is required")
        if not self.connection_string and not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}")
        if self.server_selection_timeout <= 0:
            raise ConfigError("server_selection_timeout must be positive")

    def get_connection_string(self) -> str:
        """Build the MongoDB connection string."""
        if self.connection_string:
            return self.connection_string

        if self.username and self.password:
            auth = f"{self.username}:{self.password}@"
        else:
            auth = ""

        uri = f"mongodb://{auth}{self.host}:{self.port}"

        options = []
        if self.replica_set:
            options.append(f"replicaSet={self.replica_set}")
        if self.tls:
            options.append("tls=true")
        if self.auth_source and self.username:
            options.append(f"authSource={self.auth_source}")
        options.append(f"readPreference={self.read_preference}")
        options.append(f"w={self.write_concern}")
        options.append(f"appName={self.app_name}")

        return uri + "/?" + "&".join(options)

    @classmethod
    def from_env(
        cls,
        prefix: str = "DOCMAPPER",
        environ: dict[str, str] | None = None,
    ) -> "MongoConfig":
        """Create a configuration from environment variables.

        ``DOCMAPPER_HOST=db`` sets ``host``, ``DOCMAPPER_URI`` sets
        ``connection_string``, and so on. Unset variables keep defaults.

        Raises:
            ConfigError: If a value cannot be parsed.
        """
        environ = os.environ if environ is None else environ
        aliases = {"uri": "connection_string"}
        values: dict[str, Any] = {}

        for key, raw in environ.items():
            if not key.startswith(f"{prefix}_"):
                continue
            name = key[len(prefix) + 1 :].lower()
            name = aliases.get(name, name)
            values[name] = raw

        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in values:
                kwargs[f.name] = _parse_field(f.name, str(f.type), values[f.name])

        return cls(**kwargs)


def _parse_field(name: str, type_name: str, value: str) -> Any:
    if value.lower() in ("null", "none", "") and "None" in type_name:
        return None
    try:
        if type_name.startswith("bool"):
            if value.lower() in _TRUE_VALUES:
                return True
            if value.lower() in _FALSE_VALUES:
                return False
            raise ValueError(value)
        if type_name.startswith("int"):
            return int(value)
        if type_name.startswith("float"):
            return float(value)
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e
    return value


# =============================================================================
# Client Provider
# =============================================================================


class ClientProvider:
    """Lazily creates and shares one ``pymongo.MongoClient``.

    Example:
        >>> with ClientProvider(MongoConfig(database="shop")) as provider:
        ...     orders = provider.get_collection("orders")
    """

    def __init__(self, config: MongoConfig, client: Any | None = None) -> None:
        config.validate()
        self._config = config
        self._client = client
        self._lock = threading.Lock()

    @property
    def config(self) -> MongoConfig:
        return self._config

    def get_client(self) -> Any:
        """Return the shared client, creating it on first use."""
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = MongoClient(
                        self._config.get_connection_string(),
                        serverSelectionTimeoutMS=int(
                            self._config.server_selection_timeout * 1000
                        ),
                    )
                    logger.info(
                        f"Created MongoDB client for {self._config.host}:{self._config.port}"
                    )
        return self._client

    def get_database(self) -> Any:
        return self.get_client()[self._config.database]

    def get_collection(self, name: str) -> Any:
        """Return a collection of the configured database."""
        return self.get_database()[name]

    def close(self) -> None:
        """Close the client, if one was created."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def __enter__(self) -> "ClientProvider":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
