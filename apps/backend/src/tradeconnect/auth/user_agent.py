"""Coarse device classification from ``User-Agent`` headers."""

from __future__ import annotations

from dataclasses import dataclass

from tradeconnect.auth.enums import DeviceType

UNKNOWN_OS = "Unknown OS"
UNKNOWN_BROWSER = "Unknown Browser"

# Checked in order; the first matching marker wins. iOS user agents also
# contain "like Mac OS X", so they are matched before macOS.
_OS_MARKERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("windows nt 10.0",), "Windows 10"),
    (("windows nt 6.3",), "Windows 8.1"),
    (("windows nt 6.2",), "Windows 8"),
    (("windows nt 6.1",), "Windows 7"),
    (("windows",), "Windows"),
    (("iphone", "ipad"), "iOS"),
    (("mac os x",), "macOS"),
    (("android",), "Android"),
    (("linux",), "Linux"),
)


@dataclass(frozen=True)
class DeviceInfo:
    device_type: DeviceType
    os: str
    browser: str


def _device_type(ua: str) -> DeviceType:
    if "tablet" in ua or "ipad" in ua:
        return DeviceType.TABLET
    if "mobile" in ua or "iphone" in ua:
        return DeviceType.MOBILE
    if any(marker in ua for marker in ("desktop", "windows", "macintosh", "linux")):
        return DeviceType.DESKTOP
    return DeviceType.UNKNOWN


def _os(ua: str) -> str:
    for markers, name in _OS_MARKERS:
        if any(marker in ua for marker in markers):
            return name
    return UNKNOWN_OS


def _browser(ua: str) -> str:
    if "edg/" in ua:
        return "Microsoft Edge"
    if "chrome/" in ua:
        return "Google Chrome"
    if "firefox/" in ua:
        return "Mozilla Firefox"
    if "safari/" in ua and "chrome" not in ua:
        return "Safari"
    if "opera/" in ua:
        return "Opera"
    return UNKNOWN_BROWSER


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Return device type, OS and browser guessed from a raw ``User-Agent``."""
    if not user_agent:
        return DeviceInfo(DeviceType.UNKNOWN, UNKNOWN_OS, UNKNOWN_BROWSER)

    ua = user_agent.lower()
    return DeviceInfo(device_type=_device_type(ua), os=_os(ua), browser=_browser(ua))
