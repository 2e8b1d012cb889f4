"""
Shared test fixtures.

This module puts ``src`` on the import path and provides the simulated
study and fitted phi model reused across test modules.
"""

import os
import sys

import numpy as np
import pandas as pd
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from xsrecency.phi_regression import fit_phi_model  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: end-to-end simulation and estimation runs"
    )


@pytest.fixture(scope="session")
def recency_study():
    """Cross-sectional study with known durations (2000 subjects).

    Recency follows phi(t) = exp(-2t).
    """
    gen = np.random.default_rng(2024)
    ui = gen.uniform(0.0, 12.0, size=2000)
    ri = gen.binomial(1, np.exp(-2 * ui))
    return pd.DataFrame({"id": np.arange(len(ui)), "ui": ui, "ri": ri})


@pytest.fixture(scope="session")
def glm_model(recency_study):
    """Quadratic logistic GLM fitted on the shared study."""
    return fit_phi_model(recency_study, model_type="glm", degree=2)
