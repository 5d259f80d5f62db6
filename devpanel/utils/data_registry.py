"""
Artifact provenance for pipeline outputs:
- compute_md5(path): writes <path>.md5 next to the artifact
- update_sources_yaml(canonical_id, checksum): stamps the matching entry in data/raw/sources.yaml
- record_artifact(path, canonical_id): both of the above
"""

from __future__ import annotations
import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

LOG = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SOURCES_FILE = PROJECT_ROOT / "data" / "raw" / "sources.yaml"


def compute_md5(file_path: str | Path) -> str:
    """Compute MD5 for a file and write <file>.md5 next to it."""
    p = Path(file_path)
    if not p.exists():
        raise FileNotFoundError(f"{file_path} not found")

    h = hashlib.md5()
    with p.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)

    md5 = h.hexdigest()
    (p.parent / (p.name + ".md5")).write_text(md5, encoding="utf8")
    LOG.debug("Wrote md5 for %s", p)
    return md5


def update_sources_yaml(canonical_id: str, checksum: str, sources_file: Optional[Path] = None) -> bool:
    """
    Stamp last_fetch + checksum on the sources.yaml entry with this canonical_id.
    Returns True if an entry was updated.
    """
    sources_file = Path(sources_file) if sources_file else SOURCES_FILE
    if not sources_file.exists():
        LOG.debug("sources.yaml not found at %s; skipping registry update", sources_file)
        return False

    with sources_file.open("r", encoding="utf8") as f:
        data = yaml.safe_load(f) or {}

    entry = next((s for s in data.get("sources", []) if s.get("canonical_id") == canonical_id), None)
    if entry is None:
        LOG.debug("canonical_id %s not found in %s", canonical_id, sources_file)
        return False

    entry["last_fetch"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    entry["checksum"] = checksum
    with sources_file.open("w", encoding="utf8") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    LOG.info("Updated %s for %s", sources_file.name, canonical_id)
    return True


def record_artifact(file_path: str | Path, canonical_id: Optional[str] = None,
                    sources_file: Optional[Path] = None) -> Optional[str]:
    """Compute md5 and update the sources registry if canonical_id is given."""
    try:
        md5 = compute_md5(file_path)
    except OSError as exc:
        LOG.error("compute_md5 failed for %s: %s", file_path, exc)
        return None

    if canonical_id:
        update_sources_yaml(canonical_id, md5, sources_file=sources_file)

    return md5
