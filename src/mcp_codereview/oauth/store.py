"""On-disk storage for the OAuth credential record.

This module introduces a *narrow* persistence interface
(:class:`CredentialStore`) and a JSON-file implementation
(:class:`CredentialFile`).  The design follows these goals:

* **Atomicity** – writes use *temp-file + os.replace*.
* **Privacy** – the file is created with owner-only permissions (``0600``).
* **Portability** – only standard-library modules are required.

Environment variables
---------------------
REVIEWBOARD_OAUTH_CONFIG
    Path of the credential file.
    Defaults to ``~/.mcp-codereview/oauth-config.json`` when unset.

The file holds a client secret and a refresh token; keep it out of version
control.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Protocol, runtime_checkable

from mcp_codereview.oauth.errors import ConfigNotFound, ConfigParseError
from mcp_codereview.oauth.models import CredentialRecord

_LOG = logging.getLogger("mcp-codereview.oauth.store")

CONFIG_PATH_ENV = "REVIEWBOARD_OAUTH_CONFIG"
_FILE_MODE = 0o600


def default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """Resolve the credential file location from the environment."""
    env = os.environ if environ is None else environ
    configured = env.get(CONFIG_PATH_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".mcp-codereview" / "oauth-config.json"


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    fd = os.open(tmp, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, _FILE_MODE)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
            fh.write("\n")
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    os.chmod(tmp, _FILE_MODE)  # umask may have narrowed O_CREAT's mode
    os.replace(tmp, path)  # atomic on POSIX


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class CredentialStore(Protocol):
    """Minimal persistence contract for the credential record."""

    def load(self) -> CredentialRecord: ...
    def save(self, record: CredentialRecord) -> None: ...


class CredentialFile(CredentialStore):
    """JSON-file implementation of :class:`CredentialStore`."""

    def __init__(self, path: str | os.PathLike | None = None) -> None:
        self.path = Path(path).expanduser() if path else default_config_path()

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> CredentialRecord:
        """Read and validate the record.

        Raises
        ------
        ConfigNotFound
            The file does not exist.
        ConfigParseError
            The file is not valid JSON or not a complete record.
        """
        _LOG.debug("Loading OAuth configuration from %s", self.path)
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ConfigNotFound(str(self.path)) from None
        except OSError as exc:
            raise ConfigParseError(str(self.path), exc.strerror or str(exc)) from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigParseError(str(self.path), f"invalid JSON: {exc.msg}") from exc
        try:
            record = CredentialRecord.from_dict(data)
        except ValueError as exc:
            raise ConfigParseError(str(self.path), str(exc)) from exc

        _LOG.debug("OAuth configuration loaded")
        return record

    def save(self, record: CredentialRecord) -> None:
        _atomic_write(self.path, record.to_dict())
        _LOG.debug("Saved OAuth configuration to %s", self.path)
