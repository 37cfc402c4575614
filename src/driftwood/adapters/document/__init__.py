"""Declarative document adapter."""

from __future__ import annotations

from .loader import load_document, parse_document
from .schema import DocumentSpec, LifecycleSpec, ResourceSpec
from .translator import translate_document

__all__ = [
    "DocumentSpec",
    "LifecycleSpec",
    "ResourceSpec",
    "load_document",
    "parse_document",
    "translate_document",
]
