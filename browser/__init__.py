"""Browser automation helpers built on Playwright."""

from .playwright_flow import PlaywrightSession

__all__ = ["PlaywrightSession"]
