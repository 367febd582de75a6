"""GraphGenerator: Plotly bar chart of fold changes.

One bar per main-factor level with an upward error bar (FC to FC + sd) and the
significance code of its contrast against the reference level above it.
"""

import textwrap

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from qpcr_ancova.constants import DEFAULT_BAR_LINE, DEFAULT_PLOT_SETTINGS, PLOTLY_FONT_FAMILY
from qpcr_ancova.errors import ConfigurationError


class GraphGenerator:
    @staticmethod
    def _wrap_text(text: str, width: int = 15) -> str:
        """Wrap text for x-axis labels using <br> for Plotly compatibility"""
        wrapped = textwrap.fill(text, width=width)
        return wrapped.replace("\n", "<br>")

    @staticmethod
    def resolve_settings(settings: dict = None) -> dict:
        """Merge user settings over DEFAULT_PLOT_SETTINGS, rejecting unknown keys."""
        settings = dict(settings or {})
        unknown = sorted(set(settings) - set(DEFAULT_PLOT_SETTINGS))
        if unknown:
            raise ConfigurationError(
                f"Unknown plot settings {unknown}. Valid keys: {sorted(DEFAULT_PLOT_SETTINGS)}"
            )
        merged = dict(DEFAULT_PLOT_SETTINGS)
        merged.update(settings)
        if merged["y_axis_by"] <= 0:
            raise ConfigurationError(f"y_axis_by must be positive, got {merged['y_axis_by']}")
        return merged

    @staticmethod
    def create_fc_graph(fc_table: pd.DataFrame, settings: dict = None) -> go.Figure:
        """Create the fold-change bar chart from a fold-change table"""
        settings = GraphGenerator.resolve_settings(settings)

        # Guard against empty data
        if fc_table is None or fc_table.empty:
            fig = go.Figure()
            fig.add_annotation(text="No data available", showarrow=False)
            return fig

        data = fc_table.reset_index(drop=True)
        labels = data["level"] if "level" in data.columns else data["contrast"]
        fold_change = pd.to_numeric(data["FC"], errors="coerce").fillna(0).to_numpy()
        error_array = pd.to_numeric(data["sd"], errors="coerce").fillna(0).to_numpy()
        n_bars = len(data)

        fig = go.Figure()
        fig.add_trace(
            go.Bar(
                x=list(range(n_bars)),
                y=fold_change,
                width=settings["width"],
                error_y=dict(
                    type="data",
                    array=error_array,
                    arrayminus=[0] * n_bars,
                    visible=True,
                    thickness=1.5,
                    width=6,
                    color=DEFAULT_BAR_LINE,
                    symmetric=False,
                ),
                marker=dict(
                    color=settings["fill"],
                    line=dict(width=1, color=DEFAULT_BAR_LINE),
                ),
                showlegend=False,
            )
        )

        # Significance symbols above the error bar
        sig_column = data["sig"] if "sig" in data.columns else pd.Series([""] * n_bars)
        for idx in range(n_bars):
            symbol = str(sig_column.iloc[idx]).strip()
            if not symbol or symbol == "nan":
                continue
            fig.add_annotation(
                x=idx,
                y=fold_change[idx] + error_array[idx] + settings["letter_position_adjust"],
                text=symbol,
                showarrow=False,
                font=dict(size=settings["fontsize_pvalue"], color="black", family=PLOTLY_FONT_FAMILY),
                xref="x",
                yref="y",
                xanchor="center",
                yanchor="bottom",
            )

        y_top = fold_change.max() + error_array.max() + settings["y_axis_adjust"]
        if not np.isfinite(y_top) or y_top <= 0:
            y_top = max(fold_change.max(), 1.0)
        y_limit = y_top + settings["y_axis_adjust"]
        if y_limit <= y_top:
            y_limit = y_top * 1.1

        wrapped_labels = [GraphGenerator._wrap_text(str(label), 15) for label in labels]

        fig.update_layout(
            title="",
            xaxis=dict(
                title=dict(text=settings["xlab"], font=dict(size=settings["fontsize"], family=PLOTLY_FONT_FAMILY)),
                showgrid=False,
                zeroline=False,
                tickmode="array",
                tickvals=list(range(n_bars)),
                ticktext=wrapped_labels,
                tickfont=dict(size=settings["fontsize"], family=PLOTLY_FONT_FAMILY),
                # Plotly rotates clockwise for positive angles
                tickangle=-settings["axis_text_x_angle"],
                showline=True,
                linewidth=1,
                linecolor="black",
                range=[-0.5, n_bars - 0.5],
            ),
            yaxis=dict(
                title=dict(text=settings["ylab"], font=dict(size=settings["fontsize"], family=PLOTLY_FONT_FAMILY)),
                tickfont=dict(size=settings["fontsize"], family=PLOTLY_FONT_FAMILY),
                showgrid=False,
                zeroline=True,
                zerolinewidth=1,
                zerolinecolor="black",
                showline=True,
                linewidth=1,
                linecolor="black",
                tick0=0,
                dtick=settings["y_axis_by"],
                range=[0, y_limit],
            ),
            template=settings["color_scheme"],
            font=dict(size=settings["fontsize"], family=PLOTLY_FONT_FAMILY),
            height=settings["figure_height"],
            width=settings["figure_width"],
            showlegend=False,
            plot_bgcolor="#FFFFFF",
            paper_bgcolor="#FFFFFF",
        )

        return fig
