import numpy as np
import pytest
import scipy.sparse

import gspbench as gb


def random_weighted_graph(n=6, seed=0):
    rng = np.random.default_rng(seed)
    W = rng.uniform(0.1, 1.0, size=(n, n))
    W = np.triu(W, 1)
    return gb.graphs.graph_from_adjacency(W + W.T)


def test_make_conv():
    H = gb.graphs.make_conv(np.array([1.0, -1.0]), 4)
    expected = np.array([[-1, 1, 0, 0],
                         [0, -1, 1, 0],
                         [0, 0, -1, 1]])
    np.testing.assert_array_equal(H, expected)


def test_grid_graph():
    G = gb.graphs.grid_graph((4, 5))

    assert G.N == 20
    assert G.grad.shape == (4 * 4 + 3 * 5, 20)

    W = G.W.toarray()
    np.testing.assert_array_equal(W, W.T)
    assert np.all(np.diag(W) == 0)
    degrees = W.sum(axis=1)
    assert degrees.min() == 2 and degrees.max() == 4

    # pixel (1, 1) touches (0, 1), (2, 1), (1, 0), (1, 2)
    assert set(np.flatnonzero(W[6])) == {1, 11, 5, 7}

    np.testing.assert_allclose(G.L.toarray().sum(axis=1), 0, atol=1e-12)


def test_usps_grid_edges():
    G = gb.graphs.grid_graph((16, 16))
    assert G.grad.shape[0] == 2 * 16 * 15


def test_fourier_basis():
    G = gb.graphs.grid_graph((3, 4))
    L = G.L.toarray()

    np.testing.assert_allclose(L @ G.U, G.U * G.e, atol=1e-10)
    np.testing.assert_allclose(G.U.T @ G.U, np.eye(G.N), atol=1e-10)
    assert G.e[0] == pytest.approx(0, abs=1e-10)
    assert np.all(np.diff(G.e) >= 0)
    assert G.lmax == G.e[-1]

    x = np.arange(G.N, dtype=float)
    np.testing.assert_allclose(G.igft(G.gft(x)), x, atol=1e-12)


def test_graph_from_adjacency():
    G = random_weighted_graph()
    np.testing.assert_allclose((G.grad.T @ G.grad).toarray(), G.L.toarray())
    np.testing.assert_allclose(
        G.L.toarray(),
        np.diag(G.W.toarray().sum(axis=1)) - G.W.toarray())


def test_graph_from_adjacency_rejects_asymmetric():
    W = np.array([[0.0, 1.0], [0.0, 0.0]])
    with pytest.raises(ValueError):
        gb.graphs.graph_from_adjacency(W)


def test_patch_graph(small_digits):
    images = small_digits.T.reshape(-1, 8, 8).transpose(1, 2, 0)
    G = gb.graphs.patch_graph(images, patch_size=3, k=4)

    assert G.N == 64
    W = G.W.toarray()
    np.testing.assert_allclose(W, W.T)
    assert np.all(W >= 0) and np.all(W <= 1)
    assert np.all(np.diag(W) == 0)
    # every node keeps at least its own k neighbors
    assert np.all((W > 0).sum(axis=1) >= 4)
    assert scipy.sparse.issparse(G.L)


def test_patch_features_layout():
    images = np.arange(2 * 3 * 4, dtype=float).reshape(3, 4, 2)
    features = gb.graphs.patch_features(images, 3)

    assert features.shape == (12, 9 * 2)
    # center of the patch of pixel (1, 2) in image 0
    assert features[1 * 4 + 2, 4] == images[1, 2, 0]
    assert features[1 * 4 + 2, 9 + 4] == images[1, 2, 1]


def test_patch_graph_bad_input():
    with pytest.raises(ValueError):
        gb.graphs.patch_graph(np.zeros((8, 8)))
    with pytest.raises(ValueError):
        gb.graphs.patch_graph(np.zeros((8, 8, 2)), patch_size=4)
    with pytest.raises(ValueError):
        gb.graphs.patch_graph(np.random.rand(3, 3, 2), patch_size=3, k=9)


def test_stationarity_ratio():
    G = random_weighted_graph(8, seed=1)
    p = np.linspace(2.0, 0.5, G.N)
    C = (G.U * p) @ G.U.T
    assert gb.graphs.stationarity_ratio(G, C) == pytest.approx(1.0)

    rng = np.random.default_rng(2)
    A = rng.standard_normal((G.N, G.N))
    ratio = gb.graphs.stationarity_ratio(G, A @ A.T)
    assert 0 < ratio < 1


def test_experimental_psd():
    G = random_weighted_graph(8, seed=3)
    p = np.linspace(2.0, 0.5, G.N)
    C = (G.U * p) @ G.U.T

    psd = gb.graphs.experimental_psd(G, C)
    np.testing.assert_allclose(psd(G.e), p)


def test_estimate_psd_white_signals():
    G = gb.graphs.grid_graph((6, 6))
    rng = np.random.default_rng(4)
    X = rng.standard_normal((G.N, 4000))

    psd = gb.graphs.estimate_psd(G, X, num_filters=10)
    values = psd(G.e)

    assert values.shape == (G.N,)
    np.testing.assert_allclose(values, 1.0, atol=0.2)


def test_estimate_psd_is_positive(small_digits):
    G = gb.graphs.grid_graph((8, 8))
    X = small_digits - small_digits.mean(axis=1, keepdims=True)

    psd = gb.graphs.estimate_psd(G, X[:, :5])
    assert np.all(psd(np.linspace(0, G.lmax, 100)) > 0)
