"""Target loader — read ``TargetSpec`` lists from JSON or TOML files.

Accepted shapes:

* JSON: a list of target objects, or ``{"targets": [...]}``.
* TOML: an array of tables, ``[[targets]]``.

A single invalid target rejects the whole file.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from siteverify.exceptions import TargetFileError
from siteverify.models.target import TargetSpec

logger = logging.getLogger(__name__)


def _read_documents(path: Path) -> list[Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TargetFileError(str(path), str(exc)) from exc

    try:
        if path.suffix.lower() == ".toml":
            data: Any = tomllib.loads(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise TargetFileError(str(path), f"parse error: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("targets", [])
    if not isinstance(data, list):
        raise TargetFileError(str(path), "expected a list of targets")
    return data


def parse_targets(documents: list[Any], *, source: str = "<memory>") -> list[TargetSpec]:
    """Validate raw target dicts.

    Raises:
        TargetFileError: On the first invalid target or a duplicate name.
    """
    targets: list[TargetSpec] = []
    seen: set[str] = set()
    for index, doc in enumerate(documents):
        try:
            target = TargetSpec.model_validate(doc)
        except ValidationError as exc:
            first = exc.errors()[0]
            loc = " → ".join(str(x) for x in first["loc"]) or "(root)"
            raise TargetFileError(source, f"target #{index + 1}: {loc}: {first['msg']}") from exc
        if target.name in seen:
            raise TargetFileError(source, f"duplicate target name {target.name!r}")
        seen.add(target.name)
        targets.append(target)
    return targets


def load_targets(path: Path | str, *, include_disabled: bool = False) -> list[TargetSpec]:
    """Load and validate every target in *path*.

    Args:
        path: JSON or TOML targets file.
        include_disabled: Keep targets with ``enabled = false``.

    Returns:
        Targets in file order.

    Raises:
        TargetFileError: If the file is missing, unparsable, or any target
            fails validation.
    """
    file_path = Path(path)
    targets = parse_targets(_read_documents(file_path), source=str(file_path))
    if not include_disabled:
        skipped = [t.name for t in targets if not t.enabled]
        if skipped:
            logger.info("Skipping disabled target(s): %s", ", ".join(skipped))
        targets = [t for t in targets if t.enabled]
    logger.info("Loaded %d target(s) from %s", len(targets), file_path.name)
    return targets
