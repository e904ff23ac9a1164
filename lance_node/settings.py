# lance_node/settings.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List, Literal, Optional
import os

import yaml
from pydantic import BaseModel, Field

# -------------------------
# Pydantic models (typed)
# -------------------------


class LedgerConf(BaseModel):
    rpc_url: str = "http://127.0.0.1:8000/rpc"
    contract_id: str = ""
    network_passphrase: str = "Test SDF Network ; September 2015"
    timeout_sec: float = 10.0


class SignerConf(BaseModel):
    # External wallet / signing relay. Keys never live in this process.
    url: str = "http://127.0.0.1:8100/sign"
    timeout_sec: float = 30.0


class ConfirmConf(BaseModel):
    max_attempts: int = 10
    delay_sec: float = 1.0


class VotingConf(BaseModel):
    project_id: int = 1
    maintainer_address: str = ""
    min_votes: int = 1
    default_weight: int = 3
    max_weight: int = 100
    seed_bits: int = 64
    strict_decrypt: bool = False
    max_workers: int = 4


class KeysConf(BaseModel):
    keys_dir: str = "keys"


class LoggingConf(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_lines: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}


class ServerConf(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])


class Settings(BaseModel):
    ledger: LedgerConf = LedgerConf()
    signer: SignerConf = SignerConf()
    confirm: ConfirmConf = ConfirmConf()
    voting: VotingConf = VotingConf()
    keys: KeysConf = KeysConf()
    logging: LoggingConf = LoggingConf()
    server: ServerConf = ServerConf()

    # Derived (filled in finalize)
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    KEYS_DIR: Path = BASE_DIR / "keys"

    def finalize(self) -> "Settings":
        base = Path(os.getenv("LANCE_BASE_DIR", self.BASE_DIR))
        keys_dir = Path(self.keys.keys_dir)
        if not keys_dir.is_absolute():
            keys_dir = base / keys_dir
        # created lazily by KeyManager.persist, never here
        self.KEYS_DIR = keys_dir

        if self.confirm.max_attempts < 1:
            self.confirm.max_attempts = 1
        if self.confirm.delay_sec < 0:
            self.confirm.delay_sec = 0.0
        if not 1 <= self.voting.seed_bits <= 64:
            raise ValueError("voting.seed_bits must be between 1 and 64")
        if self.voting.default_weight < 1 or self.voting.max_weight < self.voting.default_weight:
            raise ValueError("voting weights must satisfy 1 <= default_weight <= max_weight")
        return self


# -------------------------
# YAML load + env overlay
# -------------------------


def _truthy(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping: {path}")
    return data


# (env name, path into cfg, cast)
_ENV_MAP = [
    ("LANCE_RPC_URL", ["ledger", "rpc_url"], str),
    ("LANCE_CONTRACT_ID", ["ledger", "contract_id"], str),
    ("LANCE_NETWORK_PASSPHRASE", ["ledger", "network_passphrase"], str),
    ("LANCE_LEDGER_TIMEOUT_SEC", ["ledger", "timeout_sec"], float),
    ("LANCE_SIGNER_URL", ["signer", "url"], str),
    ("LANCE_CONFIRM_ATTEMPTS", ["confirm", "max_attempts"], int),
    ("LANCE_CONFIRM_DELAY_SEC", ["confirm", "delay_sec"], float),
    ("LANCE_PROJECT_ID", ["voting", "project_id"], int),
    ("LANCE_MAINTAINER_ADDRESS", ["voting", "maintainer_address"], str),
    ("LANCE_MIN_VOTES", ["voting", "min_votes"], int),
    ("LANCE_STRICT_DECRYPT", ["voting", "strict_decrypt"], _truthy),
    ("LANCE_KEYS_DIR", ["keys", "keys_dir"], str),
    ("LANCE_LOG_LEVEL", ["logging", "level"], str),
    ("LANCE_LOG_JSON", ["logging", "json"], _truthy),
    ("LANCE_HOST", ["server", "host"], str),
    ("LANCE_PORT", ["server", "port"], int),
]


def _apply_env_overrides(cfg: dict) -> dict:
    def set_in(keys: List[str], value: Any):
        d = cfg
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value

    for env_name, keys, cast in _ENV_MAP:
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        set_in(keys, cast(raw))

    # allow comma list for CORS
    cors_env = os.getenv("LANCE_CORS_ORIGINS")
    if cors_env:
        set_in(["server", "cors_origins"], [x.strip() for x in cors_env.split(",") if x.strip()])
    return cfg


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Build Settings from YAML (optional) + LANCE_* environment overrides.
    """
    base = Path(__file__).resolve().parent
    yaml_path = Path(path or os.getenv("LANCE_CONFIG") or (base / "lance_config.yaml"))
    cfg = _load_yaml(yaml_path)
    cfg = _apply_env_overrides(cfg)
    return Settings(**cfg).finalize()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
