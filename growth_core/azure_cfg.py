# growth_core/azure_cfg.py
from __future__ import annotations
import os, json, logging, pathlib
from dataclasses import dataclass
from openai import AzureOpenAI

from .errors import GradingUnavailable

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class AzureSettings:
    endpoint: str
    api_key: str
    deployment: str
    api_version: str

def _from_env() -> dict[str, str]:
    return {
        "endpoint":   os.getenv("AZURE_OPENAI_ENDPOINT", ""),
        "api_key":    os.getenv("AZURE_OPENAI_API_KEY", ""),
        "api_version":os.getenv("AZURE_OPENAI_API_VERSION", ""),
        "deployment": os.getenv("AZURE_OPENAI_DEPLOYMENT", ""),
    }

def _from_json(path: str = ".azure_config.json") -> dict[str, str]:
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        j = json.loads(p.read_text(encoding="utf-8"))
    except ValueError:
        log.warning("ignoring unreadable %s", path)
        return {}
    return {k: str(j.get(k, "")) for k in ("endpoint", "api_key", "api_version", "deployment")}

def configured() -> bool:
    cfg = _from_env()
    if all(cfg.values()):
        return True
    j = _from_json()
    return all(cfg.get(k) or j.get(k) for k in cfg)

def settings() -> AzureSettings:
    cfg = _from_env()
    if not all(cfg.values()):
        for k, v in _from_json().items():
            if not cfg.get(k): cfg[k] = v
    missing = [k for k, v in cfg.items() if not v]
    if missing:
        raise GradingUnavailable(f"Azure OpenAI not configured. Missing: {', '.join(missing)}")
    return AzureSettings(**cfg)

def client() -> AzureOpenAI:
    s = settings()
    return AzureOpenAI(azure_endpoint=s.endpoint, api_key=s.api_key, api_version=s.api_version)
