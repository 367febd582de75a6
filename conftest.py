"""
Pytest configuration and fixtures for qPCR fold-change analysis tests.

This module provides shared fixtures and mocks for testing the analysis
package and the Streamlit front end without requiring Streamlit runtime.
"""

import sys
from unittest.mock import MagicMock

import pytest
import pandas as pd


# ==================== STREAMLIT MOCK ====================
# Mock streamlit before importing the app module
class MockSessionState(dict):
    """Mock Streamlit session_state that behaves like a dict with attribute access."""

    def __getattr__(self, key):
        try:
            return self[key]
        except KeyError:
            raise AttributeError(f"'MockSessionState' object has no attribute '{key}'")

    def __setattr__(self, key, value):
        self[key] = value

    def __delattr__(self, key):
        try:
            del self[key]
        except KeyError:
            raise AttributeError(f"'MockSessionState' object has no attribute '{key}'")


class MockContextManager:
    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass


def _create_mock_streamlit():
    mock_st = MagicMock()
    mock_st.session_state = MockSessionState()
    mock_st.error = MagicMock()
    mock_st.warning = MagicMock()
    mock_st.success = MagicMock()
    mock_st.info = MagicMock()
    mock_st.spinner = MagicMock(return_value=MockContextManager())
    mock_st.tabs = MagicMock(side_effect=lambda labels: [MockContextManager() for _ in labels])
    mock_st.sidebar = MockContextManager()
    mock_st.columns = MagicMock(side_effect=lambda n: [MockContextManager() for _ in range(n)])
    mock_st.expander = MagicMock(return_value=MockContextManager())
    mock_st.set_page_config = MagicMock()
    mock_st.title = MagicMock()
    mock_st.markdown = MagicMock()
    mock_st.header = MagicMock()
    mock_st.subheader = MagicMock()
    mock_st.caption = MagicMock()
    mock_st.dataframe = MagicMock()
    mock_st.plotly_chart = MagicMock()
    mock_st.file_uploader = MagicMock(return_value=None)
    mock_st.selectbox = MagicMock(return_value=None)
    mock_st.multiselect = MagicMock(return_value=[])
    mock_st.text_input = MagicMock(return_value="")
    mock_st.checkbox = MagicMock(return_value=False)
    mock_st.button = MagicMock(return_value=False)
    mock_st.radio = MagicMock(return_value=None)
    mock_st.color_picker = MagicMock(return_value="#FFFFFF")
    mock_st.download_button = MagicMock(return_value=False)
    return mock_st


sys.modules["streamlit"] = _create_mock_streamlit()


@pytest.fixture(autouse=True)
def mock_streamlit():
    """Auto-use fixture to mock Streamlit for all tests."""
    mock_st = _create_mock_streamlit()
    sys.modules["streamlit"] = mock_st

    app_module_name = "app"
    if app_module_name in sys.modules:
        del sys.modules[app_module_name]

    yield mock_st


# ==================== SAMPLE DATA FIXTURES ====================
@pytest.fixture
def two_level_data():
    """One factor, two levels, efficiency 2 everywhere.

    Delta Ct means are 5.0 (Control) and 4.0 (Treated), so the expected
    fold change of Treated is exactly 2.
    """
    return pd.DataFrame(
        {
            "Condition": ["Control"] * 3 + ["Treated"] * 3,
            "E_target": [2.0] * 6,
            "Ct_target": [25.0, 25.2, 24.8, 24.1, 23.9, 24.0],
            "E_ref": [2.0] * 6,
            "Ct_ref": [20.0] * 6,
        }
    )


@pytest.fixture
def one_factor_data():
    """One factor with three levels: Treat1 up-regulated, Treat2 down-regulated."""
    return pd.DataFrame(
        {
            "Condition": ["Control"] * 3 + ["Treat1"] * 3 + ["Treat2"] * 3,
            "E_target": [2.0] * 9,
            "Ct_target": [25.1, 24.9, 25.0, 23.5, 23.6, 23.3, 26.6, 26.4, 26.5],
            "E_ref": [2.0] * 9,
            "Ct_ref": [18.5, 18.4, 18.6, 18.3, 18.2, 18.4, 18.6, 18.5, 18.7],
        }
    )


@pytest.fixture
def factorial_data():
    """2 x 2 design (Genotype x Drought), 3 replicates per cell, one reference gene."""
    return pd.DataFrame(
        {
            "Genotype": ["R"] * 6 + ["S"] * 6,
            "Drought": ["D0"] * 3 + ["D1"] * 3 + ["D0"] * 3 + ["D1"] * 3,
            "E_target": [1.95] * 12,
            "Ct_target": [
                24.10, 24.35, 23.95,
                22.80, 23.05, 22.70,
                25.20, 25.05, 25.45,
                24.90, 24.60, 24.75,
            ],
            "E_ref": [2.0] * 12,
            "Ct_ref": [
                18.00, 18.10, 17.95,
                18.05, 18.20, 17.90,
                18.15, 18.00, 18.10,
                17.95, 18.05, 18.10,
            ],
        }
    )


@pytest.fixture
def blocked_data(factorial_data):
    """factorial_data with a Block column (one block per replicate)."""
    data = factorial_data.copy()
    data.insert(2, "Block", ["B1", "B2", "B3"] * 4)
    return data


@pytest.fixture
def two_ref_data():
    """Time x Treatment, 3 replicates, two reference genes, main factor in column 2.

    Rows are not grouped by the main factor so that ordering can be checked.
    """
    rows = []
    ct_target = {
        ("6h", "T1"): [23.1, 23.4, 23.2],
        ("6h", "Ctrl"): [25.0, 25.3, 24.8],
        ("6h", "T2"): [26.1, 25.8, 26.0],
        ("24h", "T1"): [22.5, 22.9, 22.6],
        ("24h", "Ctrl"): [24.6, 24.4, 24.9],
        ("24h", "T2"): [25.7, 25.9, 25.5],
    }
    ct_ref1 = [17.8, 18.0, 17.9, 18.1, 17.9, 18.0, 18.2, 18.0, 17.9,
               17.7, 17.9, 18.0, 18.0, 18.1, 17.8, 17.9, 18.1, 18.0]
    ct_ref2 = [20.1, 20.3, 20.2, 20.0, 20.2, 20.4, 20.3, 20.1, 20.2,
               20.0, 19.9, 20.1, 20.2, 20.0, 20.1, 20.3, 20.2, 20.0]

    i = 0
    for (time, treatment), cts in ct_target.items():
        for rep, ct in enumerate(cts, start=1):
            rows.append(
                {
                    "Time": time,
                    "Treatment": treatment,
                    "Rep": rep,
                    "E_target": 1.98,
                    "Ct_target": ct,
                    "E_ref1": 2.0,
                    "Ct_ref1": ct_ref1[i],
                    "E_ref2": 1.96,
                    "Ct_ref2": ct_ref2[i],
                }
            )
            i += 1

    return pd.DataFrame(rows)
