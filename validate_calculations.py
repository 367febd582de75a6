#!/usr/bin/env python3
"""
qPCR ANCOVA Validation Script
=============================
Validates the fold-change pipeline against the classical 2^-DDCt method.

Usage:
    python validate_calculations.py

This script will:
1. Build a one-factor dataset with amplification efficiency 2
2. Compute 2^-DDCt by hand from Ct means
3. Run the ANOVA/ANCOVA pipeline and compare fold changes
4. Check that log10(FC) equals the contrast estimate on a two-factor dataset
"""

import logging

import numpy as np
import pandas as pd

from qpcr_ancova import (
    estimated_marginal_means,
    pairwise_contrasts,
    qpcr_ancova,
)


def one_factor_data() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Condition": ["Control"] * 3 + ["Treat1"] * 3 + ["Treat2"] * 3,
            "E_target": [2.0] * 9,
            "Ct_target": [25.1, 24.9, 25.0, 23.5, 23.6, 23.3, 26.6, 26.4, 26.5],
            "E_ref": [2.0] * 9,
            "Ct_ref": [18.5, 18.4, 18.6, 18.3, 18.2, 18.4, 18.6, 18.5, 18.7],
        }
    )


def two_factor_data() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Time": ["6h"] * 6 + ["24h"] * 6,
            "Genotype": (["WT"] * 3 + ["KO"] * 3) * 2,
            "E_target": [1.95] * 12,
            "Ct_target": [24.1, 24.3, 23.9, 22.8, 23.0, 22.7, 25.2, 25.0, 25.5, 23.9, 24.2, 24.0],
            "E_ref": [2.0] * 12,
            "Ct_ref": [17.9, 18.1, 18.0, 18.2, 18.0, 18.1, 18.3, 18.1, 18.2, 18.0, 18.2, 18.1],
        }
    )


def validate_ddct_parity() -> bool:
    data = one_factor_data()
    reference = "Control"

    print(f"\n{'=' * 100}")
    print("Fold change vs 2^-DDCt (E = 2, one factor)")
    print(f"{'=' * 100}\n")

    delta_ct = (data["Ct_target"] - data["Ct_ref"]).groupby(data["Condition"]).mean()
    ref_delta_ct = delta_ct[reference]
    print(f"Reference Delta Ct: {ref_delta_ct:.6f}")

    result = qpcr_ancova(
        data,
        number_of_ref_genes=1,
        main_factor_column=1,
        level_order=["Control", "Treat1", "Treat2"],
        make_plot=False,
    )

    all_match = True
    for _, row in result.fc_table.iterrows():
        condition = row["level"]
        ddct = delta_ct[condition] - ref_delta_ct
        rq = 2 ** (-ddct)
        match = abs(row["FC"] - rq) < 1e-9
        all_match = all_match and match

        print(f"\nSample {condition}: {'✅' if match else '❌'}")
        print(f"  Delta Ct: {delta_ct[condition]:.6f}")
        print(f"  Delta Delta Ct: {ddct:.6f}")
        print(f"  RQ (2^-DDCt): {rq:.6f}")
        print(f"  FC (pipeline): {row['FC']:.6f} {'✓' if match else '✗'}")
        if not match:
            print(f"  ⚠ MISMATCH DETECTED! diff: {abs(row['FC'] - rq):.12f}")

    return all_match


def validate_fc_estimate_identity() -> bool:
    print(f"\n{'=' * 100}")
    print("log10(FC) vs contrast estimate (two factors, ANCOVA)")
    print(f"{'=' * 100}\n")

    result = qpcr_ancova(
        two_factor_data(),
        number_of_ref_genes=1,
        main_factor_column=2,
        level_order=["WT", "KO"],
        make_plot=False,
    )
    print(f"ANCOVA model: {result.lm_ancova.formula}")
    print(result.ancova_table.round(4).to_string())

    emm = estimated_marginal_means(result.lm_ancova, "Genotype")
    pairs = pairwise_contrasts(emm)
    estimate = pairs.loc[pairs["contrast"] == "WT - KO", "estimate"].iloc[0]
    fc = result.fc_table.loc[result.fc_table["level"] == "KO", "FC"].iloc[0]

    match = bool(np.isclose(np.log10(fc), estimate, rtol=0, atol=1e-12))
    print(f"\nContrast estimate: {estimate:.6f}")
    print(f"log10(FC):         {np.log10(fc):.6f} {'✓' if match else '✗'}")
    return match


def validate_qpcr_calculations():
    """Main validation function."""

    print("=" * 100)
    print("qPCR ANCOVA Engine Validation")
    print("=" * 100)

    all_match = validate_ddct_parity()
    all_match = validate_fc_estimate_identity() and all_match

    print(f"\n{'=' * 100}")
    if all_match:
        print("✅ VALIDATION PASSED - Fold changes match the reference calculations")
    else:
        print("❌ VALIDATION FAILED - Some calculations don't match")
        print("   Please check the discrepancies above.")
    print(f"{'=' * 100}\n")

    return all_match


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    success = validate_qpcr_calculations()
    raise SystemExit(0 if success else 1)
