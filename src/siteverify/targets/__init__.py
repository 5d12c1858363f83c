"""Loading and validating target files."""

from siteverify.targets.loader import load_targets, parse_targets

__all__ = ["load_targets", "parse_targets"]
