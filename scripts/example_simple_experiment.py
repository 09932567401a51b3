"""
example of how to run the system in the simplest way
"""

import gspbench as gb

out = gb.main(
    data_path='usps.mat',
    num_test=50,  # 500 gives smooth curves, takes a while
    rel_sigmas=(0.0, 0.1, 0.2, 0.3, 0.4),
    n_jobs=-1,
    perform_simulations=True,
    results_path='USPS_experiment_small.npz',
    figure_dir='figures_small',
    )

for name, values in out.mean.items():
    print(f'{name:12s}' + ''.join(f'{v:<10.2f}' for v in values))
