from __future__ import annotations

from typing import Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict


class PerformanceProfile(BaseModel):
    """
    Resource-blocking switches applied to every request of a session.

    Documents, navigations and essential scripts are never blocked whatever the switches say;
    see `portal.interception.decide()`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    block_stylesheets: bool = False
    block_images: bool = False
    block_fonts: bool = False
    block_media: bool = False
    block_non_essential_scripts: bool = False
    block_ads: bool = False
    block_analytics: bool = False


PRESETS: Mapping[str, PerformanceProfile] = {
    # Login flows where only forms matter.
    "MAXIMUM": PerformanceProfile(
        block_stylesheets=True,
        block_images=True,
        block_fonts=True,
        block_media=True,
        block_non_essential_scripts=True,
        block_ads=True,
        block_analytics=True,
    ),
    # Transaction pages that still need scripts to render tables.
    "AGGRESSIVE": PerformanceProfile(
        block_stylesheets=True,
        block_images=True,
        block_fonts=True,
        block_media=True,
        block_ads=True,
        block_analytics=True,
    ),
    "BALANCED": PerformanceProfile(
        block_images=True,
        block_fonts=True,
        block_media=True,
        block_ads=True,
        block_analytics=True,
    ),
    # Use when aggressive blocking is suspected of breaking a portal.
    "CONSERVATIVE": PerformanceProfile(block_media=True, block_ads=True, block_analytics=True),
    "NONE": PerformanceProfile(),
}

# Known-good per-bank defaults: (auth profile, scraping profile).
BANK_PROFILES: Mapping[str, tuple[str, str]] = {
    "bnc": ("MAXIMUM", "AGGRESSIVE"),
    # Banesco's iframes and challenge prompts need more script.
    "banesco": ("AGGRESSIVE", "BALANCED"),
}

ProfileSpec = Union[str, Mapping[str, bool], PerformanceProfile]


def resolve_profile(value: Optional[ProfileSpec]) -> PerformanceProfile:
    """
    Accept a preset name ("maximum"), a mapping of switches, or a profile instance.
    """
    if value is None:
        return PRESETS["BALANCED"]
    if isinstance(value, PerformanceProfile):
        return value
    if isinstance(value, str):
        key = value.strip().upper()
        if key not in PRESETS:
            raise ValueError(f"Unknown performance profile {value!r} (expected one of: {', '.join(PRESETS)})")
        return PRESETS[key]
    if isinstance(value, Mapping):
        return PerformanceProfile.model_validate(dict(value))
    raise TypeError(f"Unsupported performance profile value: {type(value).__name__}")


def bank_profile(
    bank: str,
    operation: Literal["auth", "scraping"],
    preset: Optional[str] = None,
) -> PerformanceProfile:
    if preset:
        return resolve_profile(preset)
    names = BANK_PROFILES.get((bank or "").strip().lower())
    if names is None:
        return PRESETS["BALANCED"]
    auth_name, scraping_name = names
    return PRESETS[auth_name if operation == "auth" else scraping_name]
