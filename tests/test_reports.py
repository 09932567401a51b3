import matplotlib.pyplot as plt
import numpy as np

import gspbench as gb


def test_plots(tmp_path, small_digits):
    X = small_digits - small_digits.mean(axis=1, keepdims=True)
    G = gb.graphs.grid_graph((8, 8))
    C = gb.graphs.empirical_covariance(X)
    psd_t = gb.graphs.experimental_psd(G, C)
    psd = gb.graphs.estimate_psd(G, X[:, :5])

    fig, axes = gb.reports.plot_graph_covariance(G, gb.graphs.fourier_covariance(G, C))
    assert len(axes) == 2

    fig, ax = gb.reports.plot_psds(G, psd_t, psd)
    assert len(ax.get_lines()) == 3

    fig, axes = gb.reports.plot_digits(small_digits, (8, 8), num=9)
    assert axes.shape == (3, 3)

    path = gb.reports.save_figure(fig, tmp_path / 'figs', 'digits')
    assert path.exists()
    plt.close('all')


def test_snr_curves_skip_noiseless_point():
    mean = {'tik': np.array([20.0, 15.0, 10.0]),
            'wiener': np.array([25.0, 18.0, 12.0]),
            'y': np.array([gb.opt.SNR_MAX, 14.0, 8.0])}

    fig, ax = gb.reports.plot_snr_curves(mean)

    lines = ax.get_lines()
    assert [line.get_label() for line in lines] == ['Graph Tikhonov', 'Wiener']
    np.testing.assert_array_equal(lines[0].get_xdata(), [14.0, 8.0])
    np.testing.assert_array_equal(lines[1].get_ydata(), [18.0, 12.0])
    plt.close('all')


def test_digits_column_major():
    x = np.arange(6.0)[:, np.newaxis]

    fig, axes = gb.reports.plot_digits(x, (2, 3), num=1, order='F')

    np.testing.assert_array_equal(axes[0, 0].images[0].get_array(),
                                  [[0, 2, 4], [1, 3, 5]])
    plt.close('all')
