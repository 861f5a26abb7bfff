"""Pipeline configuration constants."""

from __future__ import annotations

# Maximum steps per pipeline
MAX_STEPS_PER_PIPELINE: int = 50

# Maximum number of stored pipelines
MAX_PIPELINES: int = 200

# Allowed characters in step and pipeline identifiers
STEP_ID_PATTERN: str = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"

# gzip level used by compression steps unless configured
DEFAULT_COMPRESSION_LEVEL: int = 6

# Extension appended by compression steps
COMPRESSION_EXTENSION: str = ".tar.gz"

# Extension appended by encryption steps
ENCRYPTION_EXTENSION: str = ".enc"

# Current lineage meta document schema
META_VERSION: int = 1
META_OBJECT: str = "meta"
META_FILENAME: str = "meta.json"
