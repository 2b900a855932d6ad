"""
Compatibility decision for a package produced by another codec version.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union


@dataclass(frozen=True)
class Compatible:
    """The package format matches the running codec exactly."""
    pass


@dataclass(frozen=True)
class CompatibleWithLoss:
    """The package is newer but readable; `dropped_ids` are assets this codec does not know."""
    dropped_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Incompatible:
    """The package cannot be read by the running codec."""
    reason: str


CompatibilityOutcome = Union[Compatible, CompatibleWithLoss, Incompatible]


def evaluate_compatibility(format_version: int, min_compatible_version: int,
                           running_version: int, package_ids: Iterable[str],
                           known_ids: Optional[Iterable[str]] = None) -> CompatibilityOutcome:
    """
    Decide whether a package can be materialized by the running codec.

    Args:
        format_version: Version of the codec that wrote the package
        min_compatible_version: Oldest codec version able to read it
        running_version: Version of the codec doing the reading
        package_ids: Asset ids contained in the package
        known_ids: Ids the running codec understands; None means all of them

    Returns:
        Compatible, CompatibleWithLoss or Incompatible
    """
    if format_version == running_version:
        return Compatible()

    if min_compatible_version <= running_version < format_version:
        if known_ids is None:
            return CompatibleWithLoss([])
        known = set(known_ids)
        return CompatibleWithLoss(sorted(set(package_ids) - known))

    if running_version < min_compatible_version:
        return Incompatible(
            f"Package requires codec version {min_compatible_version} or newer, "
            f"running version is {running_version}"
        )
    return Incompatible(
        f"Package format version {format_version} is older than running version "
        f"{running_version} and cannot be read"
    )
