from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

# Load environment variables from .env file
load_dotenv()

# multer-style limit: 3e7 bytes
MAX_UPLOAD_BYTES = 30_000_000

DEFAULTS: Dict[str, Any] = {
    "database": {
        "path": "data/books.db",
    },
    "uploads": {
        "dir": "public/data/uploads",
        "max_bytes": MAX_UPLOAD_BYTES,
    },
    "storage": {
        "bucket": "",
        "region": None,
        "endpoint_url": None,
        "public_base_url": None,
        "cover_folder": "book-covers",
        "document_folder": "book-pdfs",
        "document_format": "pdf",
    },
    "auth": {
        "admin_key": "",
        "keys_db_path": "data/api_keys.db",
    },
}

# environment variable -> (dotted settings key, caster)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "ELIB_DB_PATH": ("database.path", str),
    "UPLOAD_DIR": ("uploads.dir", str),
    "UPLOAD_MAX_BYTES": ("uploads.max_bytes", int),
    "S3_BUCKET_NAME": ("storage.bucket", str),
    "AWS_S3_ENDPOINT_URL": ("storage.endpoint_url", str),
    "AWS_REGION": ("storage.region", str),
    "ASSET_PUBLIC_BASE_URL": ("storage.public_base_url", str),
    "ELIB_ADMIN_KEY": ("auth.admin_key", str),
    "ELIB_KEYS_DB_PATH": ("auth.keys_db_path", str),
}


def _env_overrides(environ: Mapping[str, str]) -> DictConfig:
    overrides = OmegaConf.create({})
    for variable, (key, cast) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value:
            OmegaConf.update(overrides, key, cast(value), force_add=True)
    return overrides


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DictConfig:
    """
    Build the runtime settings.

    Layers, lowest precedence first: built-in defaults, the YAML file named by
    ``config_path`` (or ``ELIB_CONFIG``), then environment variables. The
    defaults are struct-locked, so a YAML file with unknown keys fails fast.
    """
    environ = os.environ if environ is None else environ
    base = OmegaConf.create(DEFAULTS)
    OmegaConf.set_struct(base, True)

    layers = [base]
    path = config_path or environ.get("ELIB_CONFIG")
    if path:
        if not Path(path).exists():
            raise FileNotFoundError(f"Config file not found at {path}")
        layers.append(OmegaConf.load(path))
    layers.append(_env_overrides(environ))

    return DictConfig(OmegaConf.merge(*layers))


@lru_cache(maxsize=1)
def get_settings() -> DictConfig:
    return load_settings()
