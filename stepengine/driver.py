"""The slice of the Playwright sync API the engine depends on.

Production code passes real ``playwright.sync_api`` objects; tests pass fakes
that implement only these methods.
"""

from __future__ import annotations

from typing import Any, Callable, ContextManager, List, Optional, Protocol


class KeyboardLike(Protocol):
    def press(self, key: str) -> None: ...


class LocatorLike(Protocol):
    @property
    def first(self) -> "LocatorLike": ...

    def count(self) -> int: ...

    def nth(self, index: int) -> "LocatorLike": ...

    def wait_for(self, *, state: str = ..., timeout: Optional[float] = ...) -> None: ...

    def is_visible(self) -> bool: ...

    def is_enabled(self) -> bool: ...

    def click(self, **kwargs: Any) -> None: ...

    def dblclick(self, **kwargs: Any) -> None: ...

    def hover(self, **kwargs: Any) -> None: ...

    def fill(self, value: str, **kwargs: Any) -> None: ...

    def clear(self, **kwargs: Any) -> None: ...

    def press(self, key: str, **kwargs: Any) -> None: ...

    def press_sequentially(self, text: str, **kwargs: Any) -> None: ...

    def focus(self, **kwargs: Any) -> None: ...

    def check(self, **kwargs: Any) -> None: ...

    def uncheck(self, **kwargs: Any) -> None: ...

    def select_option(self, value: Any = ..., **kwargs: Any) -> Any: ...

    def drag_to(self, target: "LocatorLike", **kwargs: Any) -> None: ...

    def scroll_into_view_if_needed(self, **kwargs: Any) -> None: ...

    def inner_text(self, **kwargs: Any) -> str: ...

    def text_content(self, **kwargs: Any) -> Optional[str]: ...

    def input_value(self, **kwargs: Any) -> str: ...

    def get_attribute(self, name: str, **kwargs: Any) -> Optional[str]: ...

    def evaluate(self, expression: str, arg: Any = ...) -> Any: ...


class PageLike(Protocol):
    keyboard: KeyboardLike

    @property
    def url(self) -> str: ...

    def title(self) -> str: ...

    def locator(self, selector: str) -> LocatorLike: ...

    def get_by_label(self, text: str, **kwargs: Any) -> LocatorLike: ...

    def get_by_role(self, role: Any, **kwargs: Any) -> LocatorLike: ...

    def goto(self, url: str, **kwargs: Any) -> Any: ...

    def wait_for_load_state(self, state: str = ..., **kwargs: Any) -> None: ...

    def wait_for_timeout(self, timeout: float) -> None: ...

    def evaluate(self, expression: str, arg: Any = ...) -> Any: ...

    def expect_popup(self, **kwargs: Any) -> ContextManager[Any]: ...

    def bring_to_front(self) -> None: ...

    def screenshot(self, **kwargs: Any) -> bytes: ...

    def close(self) -> None: ...

    def is_closed(self) -> bool: ...


class ContextLike(Protocol):
    @property
    def pages(self) -> List[PageLike]: ...

    def new_page(self) -> PageLike: ...


class SessionLike(Protocol):
    """What the dispatcher needs from a browser session."""

    @property
    def page(self) -> PageLike: ...

    @property
    def pages(self) -> List[PageLike]: ...

    def switch_to(self, page: PageLike) -> PageLike: ...


Predicate = Callable[[], bool]
