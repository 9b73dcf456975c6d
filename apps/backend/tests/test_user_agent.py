from __future__ import annotations

import pytest

from tradeconnect.auth.enums import DeviceType
from tradeconnect.auth.user_agent import parse_user_agent

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0.2210.91"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
CHROME_ANDROID = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)


@pytest.mark.parametrize(
    ("user_agent", "device_type", "os", "browser"),
    [
        (CHROME_WINDOWS, DeviceType.DESKTOP, "Windows 10", "Google Chrome"),
        (EDGE_WINDOWS, DeviceType.DESKTOP, "Windows 10", "Microsoft Edge"),
        (SAFARI_IPHONE, DeviceType.MOBILE, "iOS", "Safari"),
        (SAFARI_IPAD, DeviceType.TABLET, "iOS", "Safari"),
        (FIREFOX_LINUX, DeviceType.DESKTOP, "Linux", "Mozilla Firefox"),
        (CHROME_ANDROID, DeviceType.MOBILE, "Android", "Google Chrome"),
    ],
)
def test_parse_user_agent(
    user_agent: str, device_type: DeviceType, os: str, browser: str
) -> None:
    info = parse_user_agent(user_agent)

    assert info.device_type is device_type
    assert info.os == os
    assert info.browser == browser


def test_parse_user_agent_handles_missing_header() -> None:
    info = parse_user_agent(None)

    assert info.device_type is DeviceType.UNKNOWN
    assert info.os == "Unknown OS"
    assert info.browser == "Unknown Browser"
