from __future__ import annotations

import os
from datetime import datetime, timezone
from functools import lru_cache
from importlib import metadata

DISTRIBUTION = "hoa-violation-tracker"


def _resolve_version() -> str:
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _resolve_git_sha() -> str:
    return os.getenv("GIT_SHA") or os.getenv("RENDER_GIT_COMMIT") or "unknown"


@lru_cache
def get_version_info() -> dict[str, str]:
    return {
        "version": _resolve_version(),
        "gitSha": _resolve_git_sha(),
        "buildTime": os.getenv("BUILD_TIME", datetime.now(timezone.utc).isoformat()),
        "env": os.getenv("APP_ENV", os.getenv("ENV", "unknown")),
    }
