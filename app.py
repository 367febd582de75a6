"""Streamlit front end for qPCR fold-change analysis (ANOVA / ANCOVA).

Run with:
    streamlit run app.py
"""

import io
import logging
from datetime import datetime

import pandas as pd
import streamlit as st

from qpcr_ancova import (
    AnalysisConfig,
    AnalysisConstants,
    AnalysisEngine,
    QPCRAnalysisError,
    QPCRParser,
    export_to_excel,
    format_p_value,
    mean_technical,
)
from qpcr_ancova.expression import raw_input_columns

logger = logging.getLogger(__name__)


def init_session_state():
    defaults = {
        "data": None,
        "source_file": None,
        "result": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def default_level_order(values) -> list:
    """Distinct main-factor values in order of first appearance."""
    return pd.Series(values).dropna().drop_duplicates().tolist()


def candidate_factor_columns(data: pd.DataFrame, number_of_ref_genes: int) -> list:
    """Columns that may hold the main factor, block or replicate labels."""
    raw_cols = raw_input_columns(data, number_of_ref_genes)
    return [col for col in data.columns if col not in raw_cols]


def build_config(
    data: pd.DataFrame,
    number_of_ref_genes: int,
    main_factor: str,
    level_order: list,
    block: str = None,
    replicate_column: str = None,
    analysis_type: str = "ancova",
    p_adjust: str = "none",
    plot_settings: dict = None,
) -> AnalysisConfig:
    """Translate widget values (column names) into an AnalysisConfig."""
    return AnalysisConfig(
        number_of_ref_genes=number_of_ref_genes,
        main_factor_column=list(data.columns).index(main_factor) + 1,
        level_order=level_order,
        block=block or None,
        analysis_type=analysis_type,
        p_adjust=p_adjust,
        replicate_column=replicate_column or None,
        plot_settings=plot_settings or {},
    )


def format_fc_table(fc_table: pd.DataFrame) -> pd.DataFrame:
    display = fc_table.copy()
    display["pvalue"] = display["pvalue"].map(format_p_value)
    for col in ["FC", "sd", "LCL", "UCL"]:
        display[col] = display[col].round(4)
    return display


def render_upload_tab():
    st.header("Step 1: Upload Data")
    st.caption(
        "Layout: factor columns first, then E/Ct pairs as the last columns "
        "(target gene, then one or two reference genes)."
    )

    uploaded = st.file_uploader("Upload qPCR table", type=["csv", "xlsx"])
    if uploaded is None:
        return

    try:
        data = QPCRParser.parse(uploaded)
    except QPCRAnalysisError as e:
        st.error(f"❌ {e}")
        return

    st.success(f"✅ {uploaded.name}: {len(data)} rows, {data.shape[1]} columns")

    if st.checkbox("Average technical replicates first"):
        groups = st.multiselect("Group rows by", list(data.columns))
        if groups:
            try:
                data = mean_technical(data, groups)
            except QPCRAnalysisError as e:
                st.error(f"❌ {e}")
                return
            st.info(f"Averaged to {len(data)} rows")

    st.session_state.data = data
    st.session_state.source_file = uploaded.name

    st.subheader("📊 Data Preview")
    st.dataframe(data.head(50), height=300)


def render_analysis_tab():
    st.header("Step 2: Configure & Run")
    data = st.session_state.data
    if data is None:
        st.info("Upload a table first.")
        return

    col1, col2 = st.columns(2)
    with col1:
        number_of_ref_genes = st.radio("Reference genes", list(AnalysisConstants.SUPPORTED_REF_GENES))
        analysis_type = st.radio("Model for contrasts", list(AnalysisConstants.ANALYSIS_TYPES))
        p_adjust = st.selectbox("p-value adjustment", list(AnalysisConstants.P_ADJUST_METHODS))

    try:
        factor_cols = candidate_factor_columns(data, number_of_ref_genes or 1)
    except QPCRAnalysisError as e:
        st.error(f"❌ {e}")
        return

    with col2:
        main_factor = st.selectbox("Main factor", factor_cols)
        if main_factor is None:
            return
        level_order = st.multiselect(
            "Level order (first = reference)",
            default_level_order(data[main_factor]),
            default=default_level_order(data[main_factor]),
        )
        others = [""] + [col for col in factor_cols if col != main_factor]
        block = st.selectbox("Block column (optional)", others)
        replicate_column = st.selectbox("Biological replicate column (optional)", others)

    with st.expander("🎨 Chart settings"):
        plot_settings = {
            "ylab": st.text_input("Y axis label", value="Fold Change"),
            "xlab": st.text_input("X axis label", value="Pairs"),
            "fill": st.color_picker("Bar color", value="#87CEEB"),
        }

    if not st.button("🔬 Run analysis", type="primary"):
        return

    try:
        config = build_config(
            data,
            number_of_ref_genes,
            main_factor,
            level_order,
            block=block,
            replicate_column=replicate_column,
            analysis_type=analysis_type,
            p_adjust=p_adjust,
            plot_settings=plot_settings,
        )
        with st.spinner("Fitting models..."):
            st.session_state.result = AnalysisEngine.run(data, config)
    except QPCRAnalysisError as e:
        st.session_state.result = None
        st.error(f"❌ {e}")
        return

    st.success("✅ Analysis complete")


def render_results_tab():
    st.header("Step 3: Results")
    result = st.session_state.result
    if result is None:
        st.info("Run the analysis first.")
        return

    for message in result.warnings:
        st.warning(message)

    st.subheader("Fold changes")
    st.dataframe(format_fc_table(result.fc_table))
    if result.plot is not None:
        st.plotly_chart(result.plot)

    st.subheader(f"ANOVA ({result.lm_anova.formula})")
    st.dataframe(result.anova_table)
    st.subheader(f"ANCOVA ({result.lm_ancova.formula})")
    st.dataframe(result.ancova_table)

    with st.expander("Transformed data"):
        st.dataframe(result.final_data)


def render_export_tab():
    st.header("Step 4: Export")
    result = st.session_state.result
    if result is None:
        st.info("Run the analysis first.")
        return

    stamp = datetime.now().strftime("%Y%m%d_%H%M")
    excel_data = export_to_excel(result, {"source_file": st.session_state.source_file or ""})
    st.download_button(
        label="📥 Download Excel Report",
        data=excel_data,
        file_name=f"qPCR_ANCOVA_{stamp}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        type="primary",
    )

    csv_buffer = io.StringIO()
    result.fc_table.to_csv(csv_buffer, index=False)
    st.download_button(
        label="📥 Download FC table (CSV)",
        data=csv_buffer.getvalue(),
        file_name=f"qPCR_FC_{stamp}.csv",
        mime="text/csv",
    )

    if result.plot is not None:
        st.download_button(
            label="📥 Download chart (HTML)",
            data=result.plot.to_html(include_plotlyjs="cdn"),
            file_name=f"qPCR_FC_chart_{stamp}.html",
            mime="text/html",
        )


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    st.set_page_config(page_title="qPCR ANCOVA", layout="wide")
    init_session_state()

    st.title("🧬 qPCR Fold Change (ANOVA / ANCOVA)")
    st.markdown("**Weighted delta-Ct fold changes adjusted for covariates and blocks**")

    with st.sidebar:
        st.header("💬 Quick Guide")
        st.markdown(
            """
        1. **Upload** a CSV/Excel table
        2. **Choose** main factor and level order
        3. **Run** the ANOVA / ANCOVA analysis
        4. **Export** tables and chart
        """
        )

    tab1, tab2, tab3, tab4 = st.tabs(["📁 Upload", "🔬 Analysis", "📊 Results", "📤 Export"])
    with tab1:
        render_upload_tab()
    with tab2:
        render_analysis_tab()
    with tab3:
        render_results_tab()
    with tab4:
        render_export_tab()


if __name__ == "__main__":
    main()
