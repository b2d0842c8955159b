"""Decode GATT weight notifications and calculate BMI."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

FLAG_UNIT_LBS = 0x01
FLAG_TIMESTAMP_PRESENT = 0x02
FLAG_USER_ID_PRESENT = 0x04

# Optional timestamp/user-id fields follow the weight, so it stays at byte 1
WEIGHT_OFFSET = 1
MIN_FRAME_LENGTH = WEIGHT_OFFSET + 2

KG_RESOLUTION = Decimal("0.005")
LBS_RESOLUTION = Decimal("0.01")


@dataclass(frozen=True)
class Measurement:
    """Decoded weight notification."""
    weight_kg: float
    unit: Literal["kg", "lbs"]
    stable: bool


@dataclass(frozen=True)
class BMICategory:
    """BMI classification with the colour used to display it."""
    label: str
    color_tag: str


UNDERWEIGHT = BMICategory("Underweight", "blue")
NORMAL = BMICategory("Normal", "green")
OVERWEIGHT = BMICategory("Overweight", "orange")
OBESE = BMICategory("Obese", "red")


def decode_frame(frame: bytes) -> Measurement | None:
    """Decode a Weight Measurement / Body Composition Measurement frame.

    Frame layout (little-endian):
    - Byte 0: Flags (bit 0 = lbs, bit 1 = timestamp present, bit 2 = user id present)
    - Bytes 1-2: Raw weight, uint16

    The raw value is scaled by 0.005 for kg and 0.01 for lbs. The lbs value is
    kept in the scale's own units, not converted. A zero reading (the scale
    waking up) is rejected. Frames carry no stability bit, so every decoded
    frame is reported stable.
    """
    if len(frame) < MIN_FRAME_LENGTH:
        return None

    flags = frame[0]
    is_lbs = bool(flags & FLAG_UNIT_LBS)

    raw_weight = int.from_bytes(frame[WEIGHT_OFFSET:WEIGHT_OFFSET + 2], "little")
    resolution = LBS_RESOLUTION if is_lbs else KG_RESOLUTION
    weight = (raw_weight * resolution).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if weight <= 0:
        return None

    return Measurement(
        weight_kg=float(weight),
        unit="lbs" if is_lbs else "kg",
        stable=True,
    )


def calculate_bmi(weight_kg: float | None, height_cm: float | None) -> float:
    """BMI rounded to one decimal, or 0 when weight or height is unknown."""
    if not weight_kg or not height_cm or weight_kg <= 0 or height_cm <= 0:
        return 0.0
    bmi = weight_kg / (height_cm / 100) ** 2
    return float(Decimal(str(bmi)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def bmi_category(bmi: float) -> BMICategory:
    """Classify a BMI value. Boundaries belong to the heavier category."""
    if bmi < 18.5:
        return UNDERWEIGHT
    if bmi < 25:
        return NORMAL
    if bmi < 30:
        return OVERWEIGHT
    return OBESE
