"""Load declarative documents from TOML or JSON files."""

from __future__ import annotations

import json
import tomllib
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from driftwood.domain.errors import DocumentError

from .schema import DocumentSpec
from .translator import translate_document

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from driftwood.domain.model import Document

log = getLogger(__name__)


def parse_document(payload: Mapping[str, object], *, source: str = "<document>") -> Document:
    try:
        spec = DocumentSpec.model_validate(payload)
    except ValidationError as exc:
        raise DocumentError(f"{source} is not a valid document:\n{exc}") from exc
    return translate_document(spec)


def load_document(path: Path) -> Document:
    """Read ``path`` (``.toml`` or ``.json``) and return the domain document."""

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            with path.open("rb") as handle:
                payload = tomllib.load(handle)
        elif suffix == ".json":
            with path.open(encoding="utf-8") as handle:
                payload = json.load(handle)
        else:
            raise DocumentError(f"Unsupported document format {path.suffix!r} for {path}")
    except OSError as exc:
        raise DocumentError(f"Cannot read {path}: {exc}") from exc
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as exc:
        raise DocumentError(f"Cannot parse {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise DocumentError(f"{path} must contain a top-level table/object")

    document = parse_document(payload, source=str(path))
    log.debug("Loaded %s resources from %s", len(document.resources), path)
    return document
