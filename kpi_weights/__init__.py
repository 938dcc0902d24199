"""KPI weight normalization and application pipeline for the E-Office KPI backend."""
