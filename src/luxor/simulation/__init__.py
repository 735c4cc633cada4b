"""Scenario simulation over the in-memory collaborators."""

from .runner import ScenarioRunner, SimulationClock, SimulationResult

__all__ = ["ScenarioRunner", "SimulationClock", "SimulationResult"]
