"""
Detection Capability Module

Evaluates device specs to recommend whether the face landmarker should run on
the GPU delegate or on CPU. Used when VISION_DELEGATE is "auto".
"""

import os
from typing import Optional, Tuple

import psutil

import config

# Device tier: low = CPU delegate, high = GPU delegate
DEVICE_TIER_LOW = "low"
DEVICE_TIER_MEDIUM = "medium"
DEVICE_TIER_HIGH = "high"

# Minimum CPU count to consider "high" tier
HIGH_TIER_CPU_COUNT = 4
# Minimum memory (GB) for "high" tier
HIGH_TIER_MEMORY_GB = 8.0

VALID_DELEGATES = ("auto", "gpu", "cpu")


def get_cpu_count() -> int:
    """Return number of CPUs (logical)."""
    return os.cpu_count() or 2


def get_memory_gb() -> Optional[float]:
    """Return total system memory in GB, or None if it cannot be read."""
    try:
        return psutil.virtual_memory().total / (1024 ** 3)
    except Exception:
        return None


def get_device_tier(cpus: Optional[int] = None, mem_gb: Optional[float] = None) -> str:
    """
    Estimate device capability: low, medium, or high.
    Only high-tier devices get the GPU delegate by default.
    """
    cpus = cpus if cpus is not None else get_cpu_count()
    mem_gb = mem_gb if mem_gb is not None else get_memory_gb()
    if cpus >= HIGH_TIER_CPU_COUNT and (mem_gb is None or mem_gb >= HIGH_TIER_MEMORY_GB):
        return DEVICE_TIER_HIGH
    if cpus >= 2 and (mem_gb is None or mem_gb >= 4.0):
        return DEVICE_TIER_MEDIUM
    return DEVICE_TIER_LOW


def recommend_vision_delegate(
    preference: Optional[str] = None,
    device_tier: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Recommend the landmarker delegate.

    Rules:
    - An explicit "gpu" or "cpu" preference wins.
    - "auto": high tier -> gpu, otherwise cpu (avoid starving a weak GPU shared with the UI).

    Returns:
        (delegate, reason) where delegate is "gpu" or "cpu"
    """
    pref = (preference or config.VISION_DELEGATE or "auto").strip().lower()
    if pref not in VALID_DELEGATES:
        raise ValueError("delegate must be 'auto', 'gpu', or 'cpu'")
    if pref in ("gpu", "cpu"):
        return pref, f"Delegate forced to {pref} by configuration"
    tier = device_tier or get_device_tier()
    if tier == DEVICE_TIER_HIGH:
        return "gpu", f"Device tier {tier}; using GPU delegate"
    return "cpu", f"Device tier {tier}; using CPU delegate"
