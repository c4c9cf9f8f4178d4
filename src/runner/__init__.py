"""Calculation orchestration engine for the BRABO program suite."""
