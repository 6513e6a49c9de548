"""Typed step DSL."""

from . import models, registry, resolution

__all__ = ["models", "registry", "resolution"]
