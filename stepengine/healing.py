"""Rediscover elements from their semantic fingerprint when locators break."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from stepflow.dsl.models import ElementDescriptor, Fingerprint

from .driver import LocatorLike, PageLike
from .locator_strategy import escape_text, near_query

log = logging.getLogger(__name__)

DEFAULT_PROXIMITY_TAGS = "input, button, select"
MIN_CLASS_TOKEN_LENGTH = 3


@dataclass(slots=True)
class HealedMatch:
    locator: Any
    strategy: str
    query: str


class SelfHealingEngine:
    """Tries weaker semantic strategies in a fixed order.

    Each strategy is accepted only when it matches exactly one element, and
    the query it reports is the one persisted as the element's new selector.
    """

    def __init__(self, page: PageLike) -> None:
        self.page = page

    def heal(self, descriptor: ElementDescriptor) -> Optional[HealedMatch]:
        fingerprint = descriptor.fingerprint
        if fingerprint is None:
            log.warning("No fingerprint recorded for %s, cannot heal", descriptor)
            return None

        log.info("Self-healing triggered for %s", descriptor)
        strategies: List[Callable[[], Optional[HealedMatch]]] = [
            lambda: self._label(fingerprint),
            lambda: self._semantic(fingerprint),
            lambda: self._proximity(fingerprint, descriptor.signal("type")),
            lambda: self._fuzzy_class(fingerprint),
        ]
        for strategy in strategies:
            match = strategy()
            if match is not None:
                log.info("Element rediscovered by %s strategy: %s", match.strategy, match.query)
                return match
        log.error("No healing strategy matched %s on the current page", descriptor)
        return None

    def _unique(self, locator: LocatorLike, strategy: str, query: str) -> Optional[HealedMatch]:
        try:
            count = locator.count()
        except Exception as exc:
            log.debug("Healing strategy %s failed for %s: %s", strategy, query, exc)
            return None
        if count == 1:
            return HealedMatch(locator=locator, strategy=strategy, query=query)
        log.debug("Healing strategy %s matched %d elements for %s", strategy, count, query)
        return None

    def _label(self, fingerprint: Fingerprint) -> Optional[HealedMatch]:
        label = fingerprint.nearby_text
        if not label:
            return None
        log.info("Trying label match (label: %r)", label)
        try:
            locator = self.page.get_by_label(label)
        except Exception as exc:
            log.debug("Label lookup failed: %s", exc)
            return None
        return self._unique(locator, "label", f'internal:label="{escape_text(label)}"i')

    def _semantic(self, fingerprint: Fingerprint) -> Optional[HealedMatch]:
        role = fingerprint.role
        if not role:
            return None
        role = role.strip().lower()
        name = fingerprint.aria_label
        log.info("Trying semantic match (role: %s, name: %s)", role, name)
        query = f"role={role}"
        try:
            if name:
                locator = self.page.get_by_role(role, name=name)
                query += f'[name="{escape_text(name)}"]'
            else:
                locator = self.page.get_by_role(role)
        except Exception as exc:
            log.debug("Role lookup failed: %s", exc)
            return None
        return self._unique(locator, "semantic", query)

    def _proximity(self, fingerprint: Fingerprint, element_type: Optional[str]) -> Optional[HealedMatch]:
        anchor = fingerprint.nearby_text
        if not anchor:
            return None
        log.info("Trying proximity search (anchor: %r)", anchor)
        query = near_query(element_type or DEFAULT_PROXIMITY_TAGS, anchor)
        try:
            locator = self.page.locator(query)
        except Exception as exc:
            log.debug("Proximity lookup failed: %s", exc)
            return None
        return self._unique(locator, "proximity", query)

    def _fuzzy_class(self, fingerprint: Fingerprint) -> Optional[HealedMatch]:
        class_list = fingerprint.class_list
        if not class_list or not class_list.strip():
            return None
        log.info("Trying fuzzy class match (classes: %s)", class_list)
        for token in class_list.split():
            if len(token) < MIN_CLASS_TOKEN_LENGTH:
                continue
            query = f".{token}"
            try:
                locator = self.page.locator(query)
            except Exception as exc:
                log.debug("Class lookup %s failed: %s", query, exc)
                continue
            match = self._unique(locator, "fuzzy-class", query)
            if match is not None:
                return match
        return None
