"""
Browser session capability consumed by the pagination engine.

`BrowserSession` / `Element` describe the small surface the crawler needs:
navigate, CSS queries, text/attribute reads, clicks, predicate waits and
script execution. `SeleniumSession` implements it on top of a Chrome
WebDriver; `open_session(settings)` owns the driver for exactly one cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from selenium import webdriver
from selenium.common.exceptions import (
    NoSuchElementException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support.ui import WebDriverWait

from .config import Settings
from .errors import SessionError

log = logging.getLogger(__name__)


# =============================================================================
# CAPABILITY PROTOCOLS
# =============================================================================
class Element(Protocol):
    def text(self) -> str: ...

    def attribute(self, name: str) -> str | None: ...

    def click(self) -> None: ...

    def query(self, selector: str) -> list[Element]: ...

    def is_stale(self) -> bool: ...


class BrowserSession(Protocol):
    def navigate(self, url: str) -> None: ...

    def query(self, selector: str) -> list[Element]: ...

    def wait_until(self, predicate: Callable[[], bool], timeout: float) -> bool: ...

    def run_script(self, js: str, *args: Any) -> Any: ...


# =============================================================================
# SELENIUM ADAPTER
# =============================================================================
class SeleniumElement:
    """Element wrapper translating selenium exceptions into SessionError."""

    def __init__(self, inner: WebElement) -> None:
        self.inner = inner

    def text(self) -> str:
        try:
            return self.inner.text or ""
        except StaleElementReferenceException as e:
            raise SessionError("stale element while reading text") from e

    def attribute(self, name: str) -> str | None:
        try:
            return self.inner.get_attribute(name)
        except StaleElementReferenceException as e:
            raise SessionError(f"stale element while reading {name!r}") from e

    def click(self) -> None:
        try:
            self.inner.click()
        except WebDriverException as e:
            raise SessionError(f"click failed: {e.__class__.__name__}") from e

    def query(self, selector: str) -> list[Element]:
        try:
            return [SeleniumElement(el) for el in self.inner.find_elements(By.CSS_SELECTOR, selector)]
        except StaleElementReferenceException as e:
            raise SessionError(f"stale element while querying {selector!r}") from e

    def is_stale(self) -> bool:
        try:
            self.inner.is_enabled()
            return False
        except StaleElementReferenceException:
            return True


class SeleniumSession:
    """BrowserSession backed by a single Chrome WebDriver."""

    def __init__(self, driver: webdriver.Chrome) -> None:
        self.driver = driver

    def navigate(self, url: str) -> None:
        try:
            self.driver.get(url)
        except WebDriverException as e:
            raise SessionError(f"navigation to {url} failed: {e.__class__.__name__}") from e

    def query(self, selector: str) -> list[Element]:
        return [SeleniumElement(el) for el in self.driver.find_elements(By.CSS_SELECTOR, selector)]

    def wait_until(self, predicate: Callable[[], bool], timeout: float) -> bool:
        wait = WebDriverWait(
            self.driver,
            timeout,
            ignored_exceptions=(StaleElementReferenceException, NoSuchElementException, SessionError),
        )
        try:
            return bool(wait.until(lambda _d: predicate()))
        except TimeoutException:
            return False

    def run_script(self, js: str, *args: Any) -> Any:
        unwrapped = [a.inner if isinstance(a, SeleniumElement) else a for a in args]
        try:
            return self.driver.execute_script(js, *unwrapped)
        except WebDriverException as e:
            raise SessionError(f"script failed: {e.__class__.__name__}") from e

    def quit(self) -> None:
        try:
            self.driver.quit()
            log.info("WebDriver closed.")
        except Exception as e:
            log.warning("Error closing WebDriver: %r", e)


def _chrome_options(settings: Settings) -> Options:
    options = Options()
    if settings.headless:
        options.add_argument("--headless=new")
    for arg in (
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--disable-blink-features=AutomationControlled",
        "--window-size=1920,1080",
        "--disable-extensions",
        "--disable-gpu",
    ):
        options.add_argument(arg)
    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    options.add_experimental_option("useAutomationExtension", False)
    options.add_argument(f"user-agent={settings.user_agent}")
    return options


@contextmanager
def open_session(settings: Settings) -> Iterator[SeleniumSession]:
    """
    Acquire one Chrome session for the duration of a cycle and always quit it,
    whether the cycle completes or raises.
    """
    log.info("Initialising Chrome WebDriver (headless=%s)...", settings.headless)
    driver = webdriver.Chrome(options=_chrome_options(settings))
    session = SeleniumSession(driver)
    try:
        # Hide the automation flag some portals check for.
        session.run_script("Object.defineProperty(navigator, 'webdriver', {get: () => undefined})")
        log.info("WebDriver ready.")
        yield session
    finally:
        session.quit()
