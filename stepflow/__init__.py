"""Recorded browser steps: DSL, storage and execution.

``stepflow.service`` is imported on demand because it depends on
``stepengine``, which itself builds on ``stepflow.dsl``.
"""

from .dsl import models, registry

__all__ = ["registry", "models"]
