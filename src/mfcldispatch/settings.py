from __future__ import annotations
import os
import tempfile
from pathlib import Path

DOCKER = os.environ.get("MFCL_DISPATCH_DOCKER", "docker")
DOCKER_SOCKET = os.environ.get("MFCL_DISPATCH_SOCKET", "/var/run/docker.sock")
CONTAINER_DIR = os.environ.get("MFCL_DISPATCH_CONTAINER_DIR", "/jobs")
LOG_NAME = os.environ.get("MFCL_DISPATCH_LOG_NAME", "output.log")
CONTAINER_PREFIX = os.environ.get("MFCL_DISPATCH_CONTAINER_PREFIX", "mfcl_sub")

# Short local base for copy-isolated staging (long Windows paths break docker cp)
_DEFAULT_STAGING = "C:/mfcl_temp" if os.name == "nt" else str(Path(tempfile.gettempdir()) / "mfcl_temp")
STAGING_ROOT = Path(os.environ.get("MFCL_DISPATCH_STAGING_ROOT", _DEFAULT_STAGING))
