# src/__init__.py
# Infant mortality trend models on HMD Lexis data
#
# data_processing: cached snapshot → cohort rates
# analysis:        nested OLS fits, comparison, rate ratios, prediction
# tables / visualization / scripts: outputs and the pipeline entry point
