"""Phased migration planning."""

from surfaceshift.planning.migration_planner import MigrationPlanner, build_plan

__all__ = ["MigrationPlanner", "build_plan"]
