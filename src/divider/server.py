"""
server.py — HTTP access to a registry of ledger files

Configuration is a TOML file:

    [storage]
    prefix = "data"
    ledgers_map = "data/ledgers.json"
    users_map = "data/users.json"

where `ledgers_map` is a JSON object mapping ledger names to ledger files.
Relative ledger paths are resolved against `prefix`. The configuration is
read again on every request so edits to the registry apply immediately.

Endpoints:
    GET  /                         liveness text
    GET  /ledgers                  registered ledger names
    GET  /ledgers/{name}           ledger snapshot
    POST /ledgers/{name}/add-user  add a user, save, return the snapshot

Unknown routes answer 404 with plain text; unknown ledgers answer 404 with
a JSON `detail`.
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging
import os
import tomllib

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel

from .errors import ConfigError, DividerError
from .store import JsonStore


logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "resources/server.toml"
CONFIG_ENV_VAR = "DIVIDER_SERVER_CONFIG"
NOT_FOUND_TEXT = "Requested resource not found"


# ==============================================================================
# CONFIGURATION
# ==============================================================================

@dataclass(frozen=True)
class StorageConfig:
    prefix: Path
    ledgers_map: Path
    users_map: Path

    @classmethod
    def read(cls, path: Union[str, Path]) -> StorageConfig:
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except OSError as exc:
            raise ConfigError("failed to read config file", Path(path)) from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError("failed to parse config file", Path(path)) from exc

        try:
            storage = data["storage"]
            return cls(
                prefix=Path(storage["prefix"]),
                ledgers_map=Path(storage["ledgers_map"]),
                users_map=Path(storage["users_map"]),
            )
        except (KeyError, TypeError) as exc:
            raise ConfigError(f"missing storage setting {exc}", Path(path)) from exc


@dataclass(frozen=True)
class AppConfig:
    storage: StorageConfig
    ledgers: Dict[str, Path]

    @classmethod
    def read(cls, path: Union[str, Path]) -> AppConfig:
        storage = StorageConfig.read(path)
        try:
            with open(storage.ledgers_map, "r", encoding="utf-8") as f:
                ledgers = json.load(f)
        except OSError as exc:
            raise ConfigError("failed to open ledgers file", storage.ledgers_map) from exc
        except json.JSONDecodeError as exc:
            raise ConfigError("failed to parse ledgers file", storage.ledgers_map) from exc

        if not isinstance(ledgers, dict):
            raise ConfigError("ledgers file must map names to paths", storage.ledgers_map)
        return cls(
            storage=storage,
            ledgers={name: storage.prefix / location for name, location in ledgers.items()},
        )

    def ledger_path(self, name: str) -> Optional[Path]:
        return self.ledgers.get(name)


# ==============================================================================
# APPLICATION
# ==============================================================================

class AddUser(BaseModel):
    name: str


def create_app(config_path: Union[str, Path, None] = None) -> FastAPI:
    """Build the application around one configuration file."""
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG)
    config_path = Path(config_path)

    app = FastAPI(title="divider")

    def ledger_store(name: str) -> JsonStore:
        location = AppConfig.read(config_path).ledger_path(name)
        if location is None:
            raise HTTPException(status_code=404, detail=f"Resource not found: ledger `{name}`")
        return JsonStore(location)

    @app.exception_handler(DividerError)
    async def internal_error(request: Request, exc: DividerError) -> PlainTextResponse:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
        return PlainTextResponse(f"Internal error: {exc}", status_code=500)

    @app.exception_handler(404)
    async def not_found(request: Request, exc: Exception) -> Response:
        if isinstance(exc, HTTPException):
            return await http_exception_handler(request, exc)
        return PlainTextResponse(NOT_FOUND_TEXT, status_code=404)

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return "Hello, world!"

    @app.get("/ledgers")
    def list_ledgers() -> List[str]:
        return list(AppConfig.read(config_path).ledgers)

    @app.get("/ledgers/{name}")
    def list_one_ledger(name: str) -> Dict[str, Any]:
        return ledger_store(name).read().to_dict()

    @app.post("/ledgers/{name}/add-user")
    def add_user_to_ledger(name: str, body: AddUser) -> Dict[str, Any]:
        store = ledger_store(name)
        ledger = store.read()
        ledger.add_user(body.name)
        store.save(ledger)
        return ledger.to_dict()

    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_app(), host="127.0.0.1", port=8080)


if __name__ == "__main__":
    main()
