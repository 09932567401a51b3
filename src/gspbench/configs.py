"""
sacred configs for scripts/run_exp.py

each function is read by sacred, its local variables become the config
"""


def usps():
    data_path = 'usps.mat'
    num_graph = 20  # digits used to build the graph
    num_psd = 20  # digits used to estimate the PSD
    num_test = 500
    image_shape = (16, 16)
    image_order = 'F'  # the .mat stores each digit column-major

    rel_sigmas = (0.0, 0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4)
    mask_prob = 0.5

    patch_size = 5
    num_neighbors = 10
    patch_sigma = None

    psd_num_filters = 50

    n_jobs = -1
    timeout = None
    seed = 0
    verbose = 1

    perform_simulations = True
    results_path = 'USPS_experiment.npz'
    figure_dir = 'figures'


def quick():
    num_test = 20
    rel_sigmas = (0.0, 0.2, 0.4)
    n_jobs = 1


def load():
    perform_simulations = False
