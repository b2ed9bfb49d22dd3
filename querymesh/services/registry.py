"""
Data Source Registry

Read-only listing of the sources a workspace has connected.

YAML format accepted by ``InMemorySourceRegistry.from_yaml``:

    sources:
      - id: src_donations
        workspace_id: ws_charity
        name: Donations DB
        kind: database
        connection_type: postgresql
        connection: {host: localhost, port: 5432, database: charity, username: ro}
        captured_schema:
          tables:
            - name: donations
              columns: [{name: id, data_type: integer}, {name: city}]

A plaintext ``connection`` block is encrypted on load with the supplied
cipher; ``encrypted_config`` may be given directly instead.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from querymesh.models.sources import RegisteredSource
from querymesh.services.encryption import FernetCredentialCipher

logger = logging.getLogger(__name__)


class SourceRegistry(ABC):
    """Read-only access to registered data sources."""

    @abstractmethod
    async def list_sources(self, workspace_id: str) -> list[RegisteredSource]:
        """Return every source registered to the workspace, in registry order."""

    @abstractmethod
    async def get_source(self, source_id: str) -> RegisteredSource | None:
        """Return one source by id."""


class InMemorySourceRegistry(SourceRegistry):
    """Registry backed by a list held in memory."""

    def __init__(self, sources: Iterable[RegisteredSource] = ()) -> None:
        self._sources: dict[str, RegisteredSource] = {}
        for source in sources:
            if source.id in self._sources:
                raise ValueError(f"Duplicate source id: {source.id}")
            self._sources[source.id] = source

    async def list_sources(self, workspace_id: str) -> list[RegisteredSource]:
        return [s for s in self._sources.values() if s.workspace_id == workspace_id]

    async def get_source(self, source_id: str) -> RegisteredSource | None:
        return self._sources.get(source_id)

    def __len__(self) -> int:
        return len(self._sources)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        cipher: FernetCredentialCipher | None = None,
    ) -> "InMemorySourceRegistry":
        """Load sources from a YAML file."""
        file_path = Path(path)
        with file_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}

        if isinstance(payload, list):
            entries = payload
        elif isinstance(payload, dict):
            entries = payload.get("sources") or []
        else:
            raise ValueError(f"{file_path} must contain a 'sources' list")

        sources = [cls._parse_entry(entry, cipher) for entry in entries]
        logger.info(f"Loaded {len(sources)} data sources from {file_path}")
        return cls(sources)

    @staticmethod
    def _parse_entry(
        entry: dict[str, Any], cipher: FernetCredentialCipher | None
    ) -> RegisteredSource:
        data = dict(entry)
        connection = data.pop("connection", None)
        if connection is not None:
            if cipher is None:
                raise ValueError(
                    f"Source {data.get('id')!r} has a plaintext connection but no cipher "
                    "was provided"
                )
            data["encrypted_config"] = cipher.encrypt_config(connection)
        return RegisteredSource.model_validate(data)
