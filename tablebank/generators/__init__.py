"""Synthetic data generators for demos and tests."""

from tablebank.generators.base import BaseGenerator
from tablebank.generators.group import GroupGenerator, SimulationStats

__all__ = ["BaseGenerator", "GroupGenerator", "SimulationStats"]
