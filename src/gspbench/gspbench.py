"""
In-painting on the USPS dataset

every digit is treated as an independent realization of a stationary
process on a graph built from pixel patches; half of the pixels are
removed, noise is added, and graph and classical recovery methods are
compared by their SNR

signals are columns, X has shape (n, num_signals)
"""
import collections
import pathlib
import time
import warnings

import joblib
import numpy as np
import scipy.io

import gspbench.graphs as graphs
import gspbench.opt as opt
import gspbench.reports as reports


# datatypes
Dataset = collections.namedtuple('Dataset', ['x', 'y'])

BenchmarkResult = collections.namedtuple(
    'BenchmarkResult', ['sigma', 'snr', 'mean'])

ExperimentOutput = collections.namedtuple(
    'ExperimentOutput',
    ['graph', 'psd', 'psd_t', 'cov_fourier', 'ratio', 'sigma', 'mean'])

ExperimentConfig = collections.namedtuple(
    'ExperimentConfig',
    ['data_path', 'num_graph', 'num_psd', 'num_test', 'image_shape',
     'image_order', 'rel_sigmas', 'mask_prob', 'patch_size', 'num_neighbors',
     'patch_sigma', 'psd_num_filters', 'n_jobs', 'timeout', 'seed',
     'verbose', 'perform_simulations', 'results_path', 'figure_dir'],
    defaults=['usps.mat', 20, 20, 500, (16, 16), 'F',
              (0.0, 0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4),
              0.5, 5, 10, None, 50, 1, None, 0,
              1, False, 'USPS_experiment.npz', None])


# top-level driver code
def main(data_path='usps.mat',
         num_graph=20,
         num_psd=20,
         num_test=500,
         image_shape=(16, 16),
         image_order='F',
         rel_sigmas=(0.0, 0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4),
         mask_prob=0.5,
         patch_size=5,
         num_neighbors=10,
         patch_sigma=None,
         psd_num_filters=50,
         n_jobs=1,
         timeout=None,
         seed=0,
         verbose=1,
         perform_simulations=False,
         results_path='USPS_experiment.npz',
         figure_dir=None,
         _run=None):
    """
    entry point for sacred (see scripts/run_exp.py) or direct calls
    """
    config = ExperimentConfig(
        data_path=data_path,
        num_graph=num_graph,
        num_psd=num_psd,
        num_test=num_test,
        image_shape=tuple(image_shape),
        image_order=image_order,
        rel_sigmas=tuple(rel_sigmas),
        mask_prob=mask_prob,
        patch_size=patch_size,
        num_neighbors=num_neighbors,
        patch_sigma=patch_sigma,
        psd_num_filters=psd_num_filters,
        n_jobs=n_jobs,
        timeout=timeout,
        seed=seed,
        verbose=verbose,
        perform_simulations=perform_simulations,
        results_path=results_path,
        figure_dir=figure_dir)

    out = run_experiment(config)

    if _run is not None:
        _run.info['stationarity_ratio'] = float(out.ratio)
        _run.info['sigma'] = out.sigma.tolist()
        _run.info['msnr'] = {name: values.tolist()
                             for name, values in out.mean.items()}
        if config.perform_simulations:
            _run.add_artifact(str(_npz_path(config.results_path)))

    return out


def run_experiment(config):
    data = load_usps(config.data_path)
    X0, XG, X, mean = split_dataset(
        data.x, config.num_graph, config.num_psd, config.num_test)
    image_shape = tuple(config.image_shape)

    if X.shape[0] != image_shape[0] * image_shape[1]:
        raise ValueError(f'signals of size {X.shape[0]} '
                         f'do not match image_shape {image_shape}')
    if config.image_order not in ('C', 'F'):
        raise ValueError(f"image_order must be 'C' or 'F', "
                         f'got {config.image_order!r}')

    # the graphs and the classic regularizers work on C order images;
    # a column-major digit is the C order flattening of its transpose
    if config.image_order == 'F':
        shape = image_shape[::-1]
    else:
        shape = image_shape

    # graph creation from the data XG
    G = graphs.patch_graph(
        XG.reshape(*shape, -1),
        patch_size=config.patch_size,
        k=config.num_neighbors,
        sigma=config.patch_sigma)
    if config.verbose > 0:
        print(f'patch graph: {G.N} nodes, {G.grad.shape[0]} edges, '
              f'lmax={G.lmax:.3e}')

    # covariance matrices
    cov0 = graphs.empirical_covariance(X0)
    cov = graphs.empirical_covariance(X)

    ratio = graphs.stationarity_ratio(G, cov)
    if config.verbose > 0:
        print(f'The stationarity ratio is: {ratio:.3f}')

    psd_t = graphs.experimental_psd(G, cov)
    psd = graphs.estimate_psd(G, X0, num_filters=config.psd_num_filters)

    sigma = noise_levels(X, config.rel_sigmas)

    if config.perform_simulations:
        grid = graphs.grid_graph(shape)
        estimators = opt.make_estimators(G, grid, psd, cov0, mean.ravel(),
                                         shape)
        rng = np.random.default_rng(config.seed)
        result = run_benchmark(X, estimators, sigma, rng,
                               mask_prob=config.mask_prob,
                               n_jobs=config.n_jobs,
                               timeout=config.timeout,
                               verbose=config.verbose)
        mean_snr = result.mean
        outpath = save_results(config.results_path, sigma, mean_snr)
        if config.verbose > 0:
            print(f'Saved to {outpath}')
    else:
        saved_sigma, mean_snr = load_results(config.results_path)
        if config.verbose > 0:
            print(f'Loaded {_npz_path(config.results_path)}')
        if saved_sigma.shape != sigma.shape or not np.allclose(saved_sigma, sigma):
            warnings.warn('saved noise levels differ from the configured '
                          'ones, using the saved ones')
        sigma = saved_sigma

    out = ExperimentOutput(graph=G, psd=psd, psd_t=psd_t,
                           cov_fourier=graphs.fourier_covariance(G, cov),
                           ratio=ratio, sigma=sigma, mean=mean_snr)

    if config.figure_dir is not None:
        reports.make_plots(out, data.x, image_shape, config.figure_dir,
                           order=config.image_order)

    return out


# data ---------------------------------------
def load_usps(path, x_key=None, y_key=None, n=256):
    """
    read digits from a .mat or .npz file

    without keys, the samples are the largest numeric 2D array with a
    dimension of size n and the labels are the other array with one
    entry per sample

    returns Dataset with x of shape (n, num_signals)
    """
    path = pathlib.Path(path)
    if path.suffix == '.mat':
        arrays = scipy.io.loadmat(str(path))
    elif path.suffix == '.npz':
        with np.load(path) as f:
            arrays = dict(f)
    else:
        raise ValueError(f'unknown data format: {path}')

    arrays = {key: np.asarray(value) for key, value in arrays.items()
              if not key.startswith('__')}

    if x_key is None:
        candidates = [
            key for key, value in arrays.items()
            if value.ndim == 2 and n in value.shape
            and np.issubdtype(value.dtype, np.number)]
        if not candidates:
            raise ValueError(f'no array with a dimension of size {n} in {path}')
        x_key = max(candidates, key=lambda key: arrays[key].size)

    x = arrays[x_key].astype(float)
    if x.shape[0] != n:
        x = x.T

    if y_key is None:
        candidates = [key for key, value in arrays.items()
                      if key != x_key and value.size == x.shape[1]]
        y_key = candidates[0] if candidates else None
    y = arrays[y_key].ravel() if y_key is not None else None

    return Dataset(x=x, y=y)


def split_dataset(x, num_graph, num_psd, num_test):
    """
    the first num_psd digits estimate the PSD and the covariance,
    the first num_graph digits build the graph and the next num_test
    digits are used for testing

    all sets are centered with the pixel mean of the whole corpus
    """
    if x.shape[1] < max(num_graph, num_psd + num_test):
        raise ValueError(f'{x.shape[1]} digits, need at least '
                         f'{max(num_graph, num_psd + num_test)}')

    mean = x.mean(axis=1, keepdims=True)

    X0 = x[:, :num_psd] - mean
    XG = x[:, :num_graph] - mean
    X = x[:, num_psd:num_psd+num_test] - mean

    return X0, XG, X, mean


def noise_levels(X, rel_sigmas):
    """
    noise std relative to the RMS value of the signals
    """
    return np.linalg.norm(X, 'fro') / np.sqrt(X.size) * np.asarray(rel_sigmas, dtype=float)


# Monte Carlo -------------------------------------
def make_mask(rng, n, mask_prob=0.5):
    return rng.random(n) < mask_prob


def make_observation(s, mask, sigma, rng):
    """
    noisy signal with the unobserved entries zeroed
    """
    y = s + sigma * rng.standard_normal(s.shape)
    return mask * y


def run_trial(s, estimators, sigma, seed, mask_prob=0.5, index=None,
              timeout=None):
    """
    one (sample, noise level) cell: draw mask and noise, recover,
    return the SNR of every method and of the observation ('y')

    a method that raises, or that takes longer than timeout seconds,
    gets nan; a running call is not interrupted
    """
    rng = np.random.default_rng(seed)
    mask = make_mask(rng, s.shape[0], mask_prob)
    y = make_observation(s, mask, sigma, rng)

    out = {}
    for name, estimator in estimators.items():
        start = time.time()
        try:
            x_hat = estimator(y, mask, sigma)
        except Exception as e:
            warnings.warn(f'{name} failed on sample {index} '
                          f'(sigma={sigma:.3e}): {e}')
            out[name] = np.nan
            continue
        elapsed = time.time() - start
        if timeout is not None and elapsed > timeout:
            warnings.warn(f'{name} timed out on sample {index} '
                          f'(sigma={sigma:.3e}): {elapsed:.1f}s > {timeout}s')
            out[name] = np.nan
            continue
        out[name] = opt.snr(s, x_hat)

    out['y'] = opt.snr(s[mask], y[mask])
    return out


def run_trials(X, estimators, sigma, seeds, mask_prob=0.5, indices=None,
               timeout=None):
    """
    run_trial on every column of X, in order

    this is the unit of work sent to a worker, so the estimators are
    unpickled once per batch of samples and a CvxpySolver builds its
    problem once per batch
    """
    if indices is None:
        indices = range(X.shape[1])
    return [run_trial(X[:, ii], estimators, sigma, seed, mask_prob, index,
                      timeout)
            for ii, (seed, index) in enumerate(zip(seeds, indices))]


def run_benchmark(X, estimators, sigmas, rng,
                  mask_prob=0.5, n_jobs=1, timeout=None, verbose=0):
    """
    mean SNR of each estimator for each noise level

    X - (n, num_samples) clean signals
    estimators - mapping name -> estimator(y, mask, sigma)
    sigmas - noise levels
    rng - np.random.Generator, one seed per (noise level, sample) is
          drawn from it up front so results do not depend on n_jobs
    timeout - seconds allowed to one estimator call, slower calls count
              as failures

    the samples of a noise level are split in one batch per worker of a
    joblib pool of n_jobs workers
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X[:, np.newaxis]
    sigmas = np.asarray(sigmas, dtype=float)
    num_samples = X.shape[1]

    names = list(estimators) + ['y']
    seeds = rng.integers(0, np.iinfo(np.int64).max,
                         size=(len(sigmas), num_samples))

    snrs = collections.OrderedDict(
        (name, np.full((num_samples, len(sigmas)), np.nan)) for name in names)

    num_batches = max(1, min(joblib.effective_n_jobs(n_jobs), num_samples))
    batches = np.array_split(np.arange(num_samples), num_batches)

    if verbose > 0:
        print(f'{"sigma":12s}{"done":6s}'
              + ''.join(f'{name:15s}' for name in names))

    with joblib.Parallel(n_jobs=n_jobs) as parallel:
        for jj, sigma in enumerate(sigmas):
            results = parallel(
                joblib.delayed(run_trials)(
                    X[:, batch], estimators, sigma, seeds[jj, batch],
                    mask_prob, batch, timeout)
                for batch in batches)

            for batch, cells in zip(batches, results):
                for ii, cell in zip(batch, cells):
                    for name, value in cell.items():
                        snrs[name][ii, jj] = value

            if verbose > 0:
                done = int(np.sum(~np.isnan(snrs['y'][:, jj])))
                print(f'{sigma:<12.3e}{done:<6d}'
                      + ''.join(f'{float(_nanmean(snrs[name][:, jj])):<15.3f}'
                                for name in names))

    mean = collections.OrderedDict(
        (name, _nanmean(values)) for name, values in snrs.items())

    return BenchmarkResult(sigma=sigmas, snr=snrs, mean=mean)


def _nanmean(a, axis=0):
    """
    mean over the non-nan entries, nan (and no warning) if there are none
    """
    a = np.asarray(a, dtype=float)
    valid = ~np.isnan(a)
    count = valid.sum(axis=axis)
    total = np.where(valid, a, 0.0).sum(axis=axis)
    return np.where(count > 0, total / np.maximum(count, 1), np.nan)


# results ---------------------------------------
def _npz_path(path):
    path = pathlib.Path(path)
    if path.suffix != '.npz':
        path = path.with_name(path.name + '.npz')
    return path


def save_results(path, sigma, mean):
    """
    one .npz with the noise levels and one array per method (msnr_<name>)
    """
    path = _npz_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    arrays = {f'msnr_{name}': np.asarray(values)
              for name, values in mean.items()}
    np.savez(path, sigma=np.asarray(sigma), **arrays)
    return path


def load_results(path):
    with np.load(_npz_path(path)) as f:
        sigma = f['sigma']
        mean = collections.OrderedDict(
            (key[len('msnr_'):], f[key])
            for key in f.files if key.startswith('msnr_'))
    return sigma, mean
