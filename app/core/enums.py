from enum import Enum


class Frequency(str, Enum):
    """How often a fee item is charged."""

    MONTHLY = "MONTHLY"
    TERM = "TERM"
    ANNUAL = "ANNUAL"
    ONE_TIME = "ONE_TIME"


class FeeStructureStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    DRAFT = "DRAFT"


class ValueType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"
