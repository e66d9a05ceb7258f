"""Heuristic device fingerprints derived from client-reported environment signals.

Two fingerprints are produced from overlapping signal sets. The *basic*
fingerprint is a 24 character digest built from three differently seeded
FNV-1a passes; the *advanced* fingerprint folds a larger signal set into a
single 32-bit hash. Each signal source is an independent provider: a provider
that fails (a browser without WebGL, a locked down audio stack) is skipped and
the remaining signals still produce a fingerprint.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from spritepay_api.core.settings import settings


_FNV_OFFSET_BASIS = 2166136261
_FNV_PRIME = 16777619
_UINT32 = 0xFFFFFFFF
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_NON_ALNUM = re.compile(r"[^a-z0-9]")


class DeviceSignals(BaseModel):
    """Environment signals reported by the browser. Every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_agent: Optional[str] = Field(None, alias="userAgent")
    language: Optional[str] = None
    cookie_enabled: Optional[bool] = Field(None, alias="cookieEnabled")
    online: Optional[bool] = None
    screen_width: Optional[int] = Field(None, alias="screenWidth")
    screen_height: Optional[int] = Field(None, alias="screenHeight")
    color_depth: Optional[int] = Field(None, alias="colorDepth")
    pixel_depth: Optional[int] = Field(None, alias="pixelDepth")
    device_pixel_ratio: Optional[float] = Field(None, alias="devicePixelRatio")
    timezone_offset: Optional[int] = Field(None, alias="timezoneOffset")
    timezone: Optional[str] = None
    hardware_concurrency: Optional[int] = Field(None, alias="hardwareConcurrency")
    device_memory: Optional[float] = Field(None, alias="deviceMemory")
    max_touch_points: Optional[int] = Field(None, alias="maxTouchPoints")
    connection_type: Optional[str] = Field(None, alias="connectionType")
    connection_downlink: Optional[float] = Field(None, alias="connectionDownlink")
    canvas: Optional[str] = None
    canvas_secondary: Optional[str] = Field(None, alias="canvasSecondary")
    webgl_vendor: Optional[str] = Field(None, alias="webglVendor")
    webgl_renderer: Optional[str] = Field(None, alias="webglRenderer")
    audio_sample_rate: Optional[int] = Field(None, alias="audioSampleRate")
    audio_bin_count: Optional[int] = Field(None, alias="audioBinCount")


class SignalUnavailable(Exception):
    """Raised by a provider whose signal source is not present."""


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _number(value: object) -> str:
    return _text(value) if value else "0"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def fnv1a_hash(text: str, seed: int = 0) -> str:
    """32-bit FNV-1a over UTF-16 code units, rendered base-36 and padded to 8."""

    value = (_FNV_OFFSET_BASIS ^ seed) & _UINT32
    for unit in _utf16_units(text):
        value ^= unit
        value = (value * _FNV_PRIME) & _UINT32
    return _to_base36(value).rjust(8, "0")


def rolling_hash32(text: str, *, pad: bool = True) -> str:
    """``h = h * 31 + c`` folded to a signed 32-bit integer; magnitude in base-36."""

    value = 0
    for unit in _utf16_units(text):
        value = (value * 31 + unit) & _UINT32
    if value >= 0x80000000:
        value -= 0x100000000
    encoded = _to_base36(abs(value))
    return encoded.rjust(8, "0") if pad else encoded


def _utf16_units(text: str) -> Iterable[int]:
    encoded = text.encode("utf-16-le", "surrogatepass")
    for index in range(0, len(encoded), 2):
        yield encoded[index] | (encoded[index + 1] << 8)


@dataclass(frozen=True)
class SignalProvider:
    """A named signal source contributing ordered parts to a fingerprint."""

    name: str
    collect: Callable[[DeviceSignals], Sequence[str]]

    def safe_collect(self, signals: DeviceSignals) -> list[str]:
        try:
            return [str(part) for part in self.collect(signals)]
        except Exception as exc:
            logger.debug("Skipping fingerprint signal provider", provider=self.name, error=str(exc))
            return []


def _require(value: object, name: str) -> object:
    if value is None or value == "":
        raise SignalUnavailable(name)
    return value


def _screen(signals: DeviceSignals) -> str:
    return f"{_number(signals.screen_width)}x{_number(signals.screen_height)}"


BASIC_PROVIDERS: tuple[SignalProvider, ...] = (
    SignalProvider("navigator", lambda s: [_text(s.user_agent), _text(s.language)]),
    SignalProvider("screen", lambda s: [_screen(s), _number(s.color_depth)]),
    SignalProvider("timezone", lambda s: [_number(s.timezone_offset)]),
    SignalProvider("canvas", lambda s: [_text(s.canvas)]),
    SignalProvider("hardware", lambda s: [_number(s.hardware_concurrency), _number(s.device_memory)]),
)

ADVANCED_PROVIDERS: tuple[SignalProvider, ...] = (
    SignalProvider(
        "navigator",
        lambda s: [_text(s.user_agent), _text(s.language), _text(s.cookie_enabled), _text(s.online)],
    ),
    SignalProvider(
        "display",
        lambda s: [
            _screen(s),
            _number(s.color_depth),
            _number(s.pixel_depth),
            _text(s.device_pixel_ratio or 1),
        ],
    ),
    SignalProvider("locale", lambda s: [_number(s.timezone_offset), _text(s.timezone)]),
    SignalProvider(
        "hardware",
        lambda s: [
            _number(s.hardware_concurrency),
            _number(s.device_memory),
            _number(s.max_touch_points),
        ],
    ),
    SignalProvider(
        "connection",
        lambda s: [_text(_require(s.connection_type, "connection")), _number(s.connection_downlink)],
    ),
    SignalProvider("canvas", lambda s: [_text(_require(s.canvas_secondary, "canvas"))]),
    SignalProvider(
        "webgl",
        lambda s: [
            _text(_require(s.webgl_vendor, "webgl_vendor")),
            _text(_require(s.webgl_renderer, "webgl_renderer")),
        ],
    ),
    SignalProvider(
        "audio",
        lambda s: [
            _text(_require(s.audio_sample_rate, "audio_sample_rate")),
            _text(_require(s.audio_bin_count, "audio_bin_count")),
        ],
    ),
)


class FingerprintGenerator:
    """Derives the basic and advanced fingerprints from device signals."""

    def __init__(
        self,
        *,
        basic_providers: Sequence[SignalProvider] = BASIC_PROVIDERS,
        advanced_providers: Sequence[SignalProvider] = ADVANCED_PROVIDERS,
        length: int | None = None,
        fallback_length: int | None = None,
    ) -> None:
        self._basic_providers = tuple(basic_providers)
        self._advanced_providers = tuple(advanced_providers)
        self._length = length or settings.fingerprint_length
        self._fallback_length = fallback_length or settings.fingerprint_fallback_length

    @staticmethod
    def _collect(providers: Sequence[SignalProvider], signals: DeviceSignals) -> list[str]:
        parts: list[str] = []
        for provider in providers:
            parts.extend(provider.safe_collect(signals))
        return parts

    def basic(self, signals: DeviceSignals) -> str:
        joined = "|".join(self._collect(self._basic_providers, signals))
        digest = fnv1a_hash(joined, 0) + fnv1a_hash(joined, 101) + fnv1a_hash(joined[::-1], 202)
        return _NON_ALNUM.sub("", digest.lower())[: self._length]

    def advanced(self, signals: DeviceSignals) -> str:
        parts = self._collect(self._advanced_providers, signals)
        if not parts:
            return self.basic(signals)[: self._fallback_length]
        return rolling_hash32("|".join(parts))

    @staticmethod
    def storage_hash(device_id: str, first_seen: str, browser_hash: str, timestamp_ms: int) -> str:
        """Consistency hash binding the locally persisted security fields together."""

        payload = json.dumps(
            {
                "deviceId": device_id,
                "firstVisit": first_seen,
                "browserHash": browser_hash,
                "timestamp": timestamp_ms,
            },
            separators=(",", ":"),
        )
        return rolling_hash32(payload, pad=False)


__all__ = [
    "ADVANCED_PROVIDERS",
    "BASIC_PROVIDERS",
    "DeviceSignals",
    "FingerprintGenerator",
    "SignalProvider",
    "SignalUnavailable",
    "fnv1a_hash",
    "rolling_hash32",
]
