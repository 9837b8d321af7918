# examples/quickstart.py
#
# Airway-style walk-through: dexamethasone-treated vs untreated airway smooth
# muscle cells from four donors. Uses the bundled simulated experiment; swap in
# make_experiment(counts_df, samples_df, sample_column="sample") for real data.
import logging

import tidy_rnaseq as tr
from tidy_rnaseq import plotting

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

se = tr.simulate_airway(n_features=5000, seed=0)

# --- a first look at the raw counts ---
long = se.bulk.pivot_longer()
print(long.head())
plotting.library_size_plot(se, color_by="dex", save_path="library_sizes.png")

# --- symbols (needs network access; skip offline) ---
# se = se.bulk.map_identifiers(tr.mygene_mapper(species="human"))
# se = se.bulk.aggregate_duplicates(by="symbol")

# --- filter, scale, ordinate ---
se = se.bulk.identify_abundant(factor_of_interest="dex")
se = se.bulk.scale_abundance()
print(se.bulk.scaling_table())
plotting.density_plot(se, assays=("counts", "counts_scaled"), save_path="density.png")

se = se.bulk.reduce_dimensions(method="MDS", n_dims=3)
plotting.mds_plot(se, color_by="dex", shape_by="cell", save_path="mds.png")

# --- differential abundance, blocking on cell line (needs R + edgeR) ---
import tidy_rnaseq.edger  # noqa: E402,F401  checks/installs edgeR

dex = tr.Contrast("dex", "trt", "untrt")
res = se.bulk.test_differential_abundance(
    ["dex", "cell"], dex, reference_levels={"dex": "untrt"}
)
print(tr.top_table(res, n=20))

sig = tr.significant_features(res, fdr_threshold=0.05, min_abs_log_fc=1.0)
print(f"{len(sig)} features with FDR < 0.05 and |logFC| >= 1")

plotting.ma_plot(res, save_path="ma.png")
plotting.volcano_plot(res, save_path="volcano.png")
if len(sig):
    plotting.heatmap(se, sig["feature"].head(30).tolist(), annotate_by="dex", save_path="heatmap.png")
    plotting.strip_plot(se, sig["feature"].iloc[0], group_by="dex", save_path="top_feature.png")

tr.write_results(res, "dex_trt_vs_untrt.tsv")

# --- or all of the above in one call ---
result = tr.run_pipeline(
    tr.simulate_airway(n_features=5000, seed=0),
    tr.PipelineConfig(
        contrast=dex,
        design_factors=("dex", "cell"),
        reference_levels={"dex": "untrt"},
        output_path="pipeline_results.tsv",
    ),
)
print(result.stages)
