# app/utils/policy.py
from __future__ import annotations
import os
import copy
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Where to read the policy file (compose sets POLICY_PATH; keep this default as a fallback)
POLICY_PATH = Path(os.getenv(
    "POLICY_PATH",
    str(Path(__file__).resolve().parents[2] / "policies" / "workflow.yaml"),
))

DEFAULT_POLICY: dict = {
    "pagination": {"default_limit": 10, "max_limit": 100},
    "reminders": {"overdue_approval_days": 7, "deadline_window_days": 3},
    "attachments": {
        "max_file_size": int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
        "max_files_per_upload": 10,
    },
}

# cache in memory
_POLICY: Optional[dict] = None


# -------------------------- loading --------------------------

def _merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out

def _load_policy_from_file() -> dict:
    if POLICY_PATH.exists():
        with open(POLICY_PATH, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                logger.warning("policy file %s is not a mapping; using defaults", POLICY_PATH)
                data = {}
            return _merge(DEFAULT_POLICY, data)
    return copy.deepcopy(DEFAULT_POLICY)

def get_policy() -> dict:
    global _POLICY
    if _POLICY is None:
        _POLICY = _load_policy_from_file()
    return _POLICY

def reload_policy() -> dict:
    global _POLICY
    _POLICY = _load_policy_from_file()
    return _POLICY


# -------------------------- helpers --------------------------

def policy_value(section: str, key: str, default: Any = None) -> Any:
    return (get_policy().get(section) or {}).get(key, default)

def page_limit(requested: Optional[int]) -> int:
    default = int(policy_value("pagination", "default_limit", 10))
    ceiling = int(policy_value("pagination", "max_limit", 100))
    if not requested or requested < 1:
        return default
    return min(int(requested), ceiling)
