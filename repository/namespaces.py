# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "hazmat"

EMBEDDINGS: Final[str] = f"{ROOT}:embeddings"  # e.g., per-text-hash vectors
