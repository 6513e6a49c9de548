"""Utilities to stabilise dynamic pages before interactions."""

from __future__ import annotations

import logging

from .driver import PageLike

log = logging.getLogger(__name__)

DEFAULT_STABILIZE_TIMEOUT = 2_000

_LOADING_SELECTORS = [
    ".loading, .spinner, .loader",
    "[data-testid*='loading'], [data-testid*='spinner']",
    ".fa-spinner, .fa-circle-notch, .fa-refresh",
    "[role='progressbar'], [aria-busy='true']",
    ".MuiCircularProgress-root, .ant-spin",
]

_DOM_IDLE_SCRIPT = """
    (timeoutMs) => new Promise(resolve => {
        const threshold = 300;
        let last = Date.now();
        const ob = new MutationObserver(() => (last = Date.now()));
        ob.observe(document, {subtree: true, childList: true, attributes: true});
        const start = Date.now();
        (function check() {
            if (Date.now() - last > threshold) {
                ob.disconnect();
                resolve(true);
                return;
            }
            if (Date.now() - start > timeoutMs) {
                ob.disconnect();
                resolve(false);
                return;
            }
            setTimeout(check, 50);
        })();
    })
"""


def wait_dom_idle(page: PageLike, timeout_ms: int = DEFAULT_STABILIZE_TIMEOUT) -> bool:
    """Wait until DOM mutations have been idle for a short threshold."""

    try:
        return bool(page.evaluate(_DOM_IDLE_SCRIPT, timeout_ms))
    except Exception as exc:
        log.debug("DOM idle check failed: %s", exc)
        page.wait_for_timeout(100)
        return False


def wait_for_loading_indicators(page: PageLike, timeout: int = 3_000) -> bool:
    """Wait for common loading indicators to disappear."""

    settled = True
    for selector in _LOADING_SELECTORS:
        try:
            page.locator(selector).first.wait_for(state="hidden", timeout=timeout)
        except Exception as exc:
            log.debug("Loading indicator %s still present: %s", selector, exc)
            settled = False
    return settled


def stabilize_page(page: PageLike, timeout: int = DEFAULT_STABILIZE_TIMEOUT) -> bool:
    """Best-effort attempt to let SPA style pages finish rendering."""

    try:
        page.wait_for_load_state("networkidle", timeout=timeout)
    except Exception as exc:
        log.warning("Network did not settle while stabilising page: %s", exc)
        page.wait_for_timeout(min(500, max(50, timeout // 2)))
        return False
    idle = wait_dom_idle(page, timeout_ms=timeout)
    indicators = wait_for_loading_indicators(page, timeout=timeout)
    return idle and indicators
