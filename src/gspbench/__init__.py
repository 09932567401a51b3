"""
benchmark of graph and classical signal recovery on USPS digits

import gspbench as gb
"""
from gspbench.gspbench import (
    Dataset, BenchmarkResult, ExperimentConfig, ExperimentOutput,
    main, run_experiment, load_usps, split_dataset, noise_levels,
    make_mask, make_observation, run_trial, run_trials, run_benchmark,
    save_results, load_results)
from gspbench import configs, graphs, opt, reports
