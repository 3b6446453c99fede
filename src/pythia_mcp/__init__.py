"""Pythia MCP Server.

Higgs likelihoods from LHC measurements via Lilith: single-point fits,
1-D and 2-D coupling scans, chi-square p-values and benchmark BSM models.
"""

__version__ = "1.0.0"
