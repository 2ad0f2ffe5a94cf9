"""Constants for the Sure Petcare API."""

from enum import IntEnum

LOGIN_ENDPOINT = "/auth/login"
DASHBOARD_ENDPOINT = "/me/start"


def device_control_endpoint(device_id: int) -> str:
    """Whole-device control (lock mode) endpoint."""
    return f"/device/{device_id}/control"


def device_tag_endpoint(device_id: int, tag_id: int) -> str:
    """Per-tag access profile endpoint on a device."""
    return f"/device/{device_id}/tag/{tag_id}"


class LockMode(IntEnum):
    """Lock mode for a device as a whole."""

    UNLOCKED = 0
    LOCKED_IN = 1
    LOCKED_OUT = 2
    LOCKED_ALL = 3


LOCK_MODE_NAMES = {mode: mode.name.lower() for mode in LockMode}


class TagProfile(IntEnum):
    """Per-cat access profile on a flap."""

    KEEP_CURRENT = 0  # unmanaged
    FULL_ACCESS = 2
    INDOOR_ONLY = 3


class Product(IntEnum):
    """Sure Petcare product ids."""

    HUB = 1
    REPEATER = 2
    PET_FLAP = 3
    PET_FLAP_CONNECT = 6
    CAT_FLAP_CONNECT = 13


FLAP_PRODUCTS = {Product.PET_FLAP, Product.PET_FLAP_CONNECT, Product.CAT_FLAP_CONNECT}

# Values of pet.status.activity.where
WHERE_INSIDE = 1
WHERE_OUTSIDE = 2

# 4xAA pack: ~4.0V is flat, ~6.4V is new
BATTERY_VOLTAGE_EMPTY = 4.0
BATTERY_VOLTAGE_RANGE = 2.4
