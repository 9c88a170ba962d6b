from __future__ import annotations

from typing import Dict, Optional, Protocol
import os
import pathlib
import re

from .config import SECRETS_DIR
from .utils import _log_debug

# 비밀값 이름 -> 환경 변수 이름
OPENAI_API_KEY_SECRET = "openai-api-key"
CLU_API_KEY_SECRET = "clu-api-key"
LUIS_API_KEY_SECRET = "luis-api-key"
GOOGLE_TOKEN_SECRET = "google-oauth-token"

_SAFE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


class MissingSecretError(LookupError):
    pass


class SecretStore(Protocol):
    def get(self, name: str) -> Optional[str]:
        ...

    def require(self, name: str) -> str:
        ...

    def put(self, name: str, value: str) -> None:
        ...


def env_var_for(name: str) -> str:
    """'openai-api-key' -> 'OPENAI_API_KEY'"""
    return re.sub(r"[^A-Za-z0-9]", "_", name).upper()


def _require(store: SecretStore, name: str) -> str:
    value = store.get(name)
    if not value:
        raise MissingSecretError(
            f"Secret '{name}' is not configured (env {env_var_for(name)}).")
    return value


class EnvSecretStore:
    """Secrets from environment variables. ``put`` only lives for the process."""

    def __init__(self, environ: Optional[Dict[str, str]] = None) -> None:
        self._environ = environ if environ is not None else os.environ
        self._overrides: Dict[str, str] = {}

    def get(self, name: str) -> Optional[str]:
        if name in self._overrides:
            return self._overrides[name]
        value = (self._environ.get(env_var_for(name)) or "").strip()
        return value or None

    def require(self, name: str) -> str:
        return _require(self, name)

    def put(self, name: str, value: str) -> None:
        self._overrides[name] = value


class FileSecretStore:
    """One file per secret under ``directory``; falls back to ``fallback`` on a miss."""

    def __init__(self,
                 directory: pathlib.Path,
                 fallback: Optional[SecretStore] = None) -> None:
        self.directory = pathlib.Path(directory)
        self.fallback = fallback

    def _path(self, name: str) -> pathlib.Path:
        if not _SAFE_NAME_RE.match(name):
            raise ValueError(f"Invalid secret name: {name!r}")
        return self.directory / name

    def get(self, name: str) -> Optional[str]:
        path = self._path(name)
        if path.exists():
            value = path.read_text(encoding="utf-8").strip()
            if value:
                return value
        if self.fallback is not None:
            return self.fallback.get(name)
        return None

    def require(self, name: str) -> str:
        return _require(self, name)

    def put(self, name: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(name)
        path.write_text(value, encoding="utf-8")
        try:
            os.chmod(path, 0o600)
        except OSError as exc:
            _log_debug(f"[SECRETS] chmod failed for {name}: {exc}")


def build_secret_store() -> SecretStore:
    env_store = EnvSecretStore()
    if SECRETS_DIR:
        return FileSecretStore(pathlib.Path(SECRETS_DIR), fallback=env_store)
    return env_store
