"""
figures for the USPS in-painting experiment
"""
import pathlib

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

import gspbench.opt as opt

#sns.set_context('paper', font_scale=2.0, rc={"lines.linewidth": 2.5})

weight_cmap = sns.color_palette('rocket_r', as_cmap=True)
cov_cmap = sns.color_palette('mako', as_cmap=True)

LABELS = {
    'tik_classic': 'Classic Tikhonov',
    'tv_classic': 'Classic TV',
    'tik': 'Graph Tikhonov',
    'tv': 'Graph TV',
    'wiener': 'Wiener',
    'grm': 'Gaussian MAP',
}


def make_plots(out, x, image_shape, figure_dir, order='C'):
    """
    the four figures of the experiment, saved as png in figure_dir

    out - ExperimentOutput
    x - raw digits, one per column, flattened in the given order
    """
    fig, _ = plot_graph_covariance(out.graph, out.cov_fourier)
    save_figure(fig, figure_dir, 'usps_cov')

    fig, _ = plot_snr_curves(out.mean)
    save_figure(fig, figure_dir, 'usps_inpainting_errors')

    fig, _ = plot_psds(out.graph, out.psd_t, out.psd)
    save_figure(fig, figure_dir, 'usps_psd')

    fig, _ = plot_digits(x, image_shape, order=order)
    save_figure(fig, figure_dir, 'usps_digits')

    plt.close('all')


def save_figure(fig, figure_dir, name):
    figure_dir = pathlib.Path(figure_dir)
    figure_dir.mkdir(parents=True, exist_ok=True)
    path = figure_dir / f'{name}.png'
    fig.savefig(path, dpi=150, bbox_inches='tight')
    return path


# plotting ------------------------
def plot_graph_covariance(G, cov_fourier, num_freqs=50, floor_db=-15):
    """
    left: weighted adjacency, right: covariance in the Fourier domain (dB)

    a stationary process has a diagonal covariance in the Fourier domain
    """
    fig, axes = plt.subplots(1, 2, figsize=(10, 4))

    im = axes[0].imshow(np.abs(G.W.toarray()), cmap=weight_cmap)
    fig.colorbar(im, ax=axes[0])
    axes[0].set_title('Graph weighted adjacency matrix')

    with np.errstate(divide='ignore'):
        disp = 20 * np.log10(np.abs(cov_fourier[:num_freqs, :num_freqs]))
    disp = np.maximum(disp, floor_db)
    im = axes[1].imshow(disp, cmap=cov_cmap)
    fig.colorbar(im, ax=axes[1])
    axes[1].set_title('Covariance matrix in Fourier (dB)')

    fig.tight_layout()
    return fig, axes


def plot_snr_curves(mean, labels=None):
    """
    output SNR of every method against the input SNR on the measured values

    mean - mapping name -> mean SNR per noise level, must contain 'y'
    """
    if labels is None:
        labels = LABELS

    x = np.asarray(mean['y'], dtype=float)
    # the noiseless level has a capped input SNR
    keep = np.isfinite(x) & (x < opt.SNR_MAX) & ~np.isclose(x, opt.SNR_MAX)

    fig, ax = plt.subplots(figsize=(6, 4))
    palette = sns.color_palette('tab10', len(mean))
    for color, (name, values) in zip(palette, mean.items()):
        if name == 'y':
            continue
        ax.plot(x[keep], np.asarray(values)[keep], linewidth=2,
                color=color, label=labels.get(name, name))

    ax.set_xlabel('Input SNR (dB) on the measured values')
    ax.set_ylabel('Output SNR (dB)')
    ax.set_title('In-painting 50% of missing pixels')
    ax.autoscale(tight=True)
    ax.legend(loc='lower right')
    fig.tight_layout()
    return fig, ax


def plot_psds(G, psd_t, psd):
    """
    experimental PSD (all test signals), its estimate from a few signals,
    and 1/x
    """
    e = G.e
    fig, ax = plt.subplots(figsize=(5, 4))
    ax.plot(e, psd_t(e), linewidth=2, label='Experimental (all signals)')
    ax.plot(e, psd(e), linewidth=2, label='Approximation (training signals)')

    positive = e > 0
    ax.plot(e[positive], 1 / e[positive], linewidth=2, label='1/x')

    top = 1.1 * max(np.max(psd_t(e)), np.max(psd(e)))
    if not top > 0:
        top = 1.0
    ax.set_xlim(0, max(G.lmax / 2, np.finfo(float).eps))
    ax.set_ylim(0, top)
    ax.set_title('Different PSD')
    ax.legend()
    fig.tight_layout()
    return fig, ax


def plot_digits(x, image_shape, num=16, order='C'):
    """
    the first num digits on a square grid

    order - how the digits were flattened, 'F' for column-major data
    """
    side = int(np.ceil(np.sqrt(num)))
    fig, axes = plt.subplots(side, side, figsize=(4, 4), squeeze=False)

    for i, ax in enumerate(axes.flatten()):
        ax.axis('off')
        if i < min(num, x.shape[1]):
            ax.imshow(x[:, i].reshape(image_shape, order=order), cmap='gray')

    fig.suptitle('USPS digits')
    return fig, axes
