"""
graphs, Fourier bases and power spectral densities

signals are columns: X has shape (n, num_signals)
"""
import collections

import numpy as np
import scipy.sparse
import scipy.spatial
import torch


class Graph(collections.namedtuple(
        'Graph', ['W', 'L', 'grad', 'e', 'U'])):
    """
    W - sparse adjacency
    L - combinatorial Laplacian, L = grad.T @ grad
    grad - weighted gradient, one row per edge
    e, U - Fourier basis, L = U diag(e) U.T
    """
    __slots__ = ()

    @property
    def N(self):
        return self.W.shape[0]

    @property
    def lmax(self):
        return self.e[-1]

    def gft(self, x):
        return self.U.T @ x

    def igft(self, x_hat):
        return self.U @ x_hat


# construction ---------------------------------------
def graph_from_gradient(grad):
    grad = scipy.sparse.csr_matrix(grad)
    L = (grad.T @ grad).tocsr()
    W = scipy.sparse.diags(L.diagonal()) - L
    W = scipy.sparse.csr_matrix(W)
    W.eliminate_zeros()
    return _with_fourier_basis(W, L, grad)


def graph_from_adjacency(W):
    W = scipy.sparse.csr_matrix(W, dtype=float)
    if W.shape[0] != W.shape[1]:
        raise ValueError(f'adjacency must be square, got {W.shape}')
    if abs(W - W.T).max() > 1e-10:
        raise ValueError('adjacency must be symmetric')

    W = scipy.sparse.csr_matrix(W - scipy.sparse.diags(W.diagonal()))  # no self loops
    W.eliminate_zeros()

    # one row per edge i < j, sqrt(w_ij) (e_i - e_j)
    upper = scipy.sparse.triu(W, k=1).tocoo()
    num_edges = upper.nnz
    rows = np.concatenate((np.arange(num_edges), np.arange(num_edges)))
    cols = np.concatenate((upper.row, upper.col))
    vals = np.sqrt(upper.data)
    vals = np.concatenate((vals, -vals))
    grad = scipy.sparse.csr_matrix(
        (vals, (rows, cols)), shape=(num_edges, W.shape[0]))

    L = scipy.sparse.csr_matrix(
        scipy.sparse.diags(np.asarray(W.sum(axis=1)).ravel()) - W)
    return _with_fourier_basis(W, L, grad)


def _with_fourier_basis(W, L, grad):
    e, U = np.linalg.eigh(L.toarray())
    e = np.maximum(e, 0.0)  # round-off below the zero eigenvalue
    return Graph(W=W, L=L, grad=grad, e=e, U=U)


def grid_graph(shape):
    return graph_from_gradient(grid_gradient(shape))


def grid_gradient(shape):
    """
    unit-weight finite differences on a rows x cols image
    flattened in C order, horizontal edges first then vertical ones
    """
    rows, cols = shape
    n = rows * cols

    horizontal = make_conv(np.array([1.0, -1.0]), n)
    # drop the differences that wrap from the end of one row to the next
    horizontal = np.delete(horizontal, slice(cols-1, None, cols), axis=0)

    h = np.zeros(cols+1)
    h[0] = -1.0
    h[-1] = 1.0
    vertical = make_conv(h, n)

    return scipy.sparse.csr_matrix(
        np.concatenate((horizontal, vertical), axis=0))


def make_conv(h, n):
    """
    Return a matrix, H, that implements convolution of a length-n signal by h

    if h is length-m, the length of the (valid) convoluation result
    is n-m+1, so H has shape (n-m+1, n)

    h = [1.0, -1.0], n = 4 ->
    H =
    [[-1, 1, 0, 0,],
     [0, -1, 1, 0,],
     [0, 0, -1, 1,]]

    """
    assert h.ndim == 1

    m = len(h)
    pad = n-m  # adds to beginning and end
    h_repeat = torch.nn.functional.unfold(
               torch.from_numpy(h).view(1, 1, -1, 1), (n, 1),
               padding=(pad, 0))
    return h_repeat[0].T.flip(1).numpy()


def patch_graph(images, patch_size=5, k=10, sigma=None):
    """
    nearest neighbor graph between the pixels of a stack of images

    images - (rows, cols, num_images)

    each pixel is described by the patches centered on it in every image,
    so two pixels are close when their neighborhoods look alike across
    the training digits

    weights are exp(-d^2 / sigma); sigma defaults to the mean squared
    distance to the k nearest neighbors
    """
    images = np.asarray(images, dtype=float)
    if images.ndim != 3:
        raise ValueError(f'images must be (rows, cols, num_images), got {images.shape}')
    if patch_size % 2 != 1:
        raise ValueError(f'patch_size must be odd, got {patch_size}')

    features = patch_features(images, patch_size)
    N = features.shape[0]
    if not 0 < k < N:
        raise ValueError(f'k must be in (0, {N}), got {k}')

    tree = scipy.spatial.cKDTree(features)
    dist, idx = tree.query(features, k=k+1)

    # remove self matches; with ties a node may not be its own first match
    keep = idx != np.arange(N)[:, np.newaxis]
    keep[keep.all(axis=1), -1] = False
    dist = dist[keep].reshape(N, k)
    idx = idx[keep].reshape(N, k)

    if sigma is None:
        sigma = np.mean(dist**2)
        if sigma == 0:
            sigma = 1.0

    weights = np.exp(-dist**2 / sigma)
    rows = np.repeat(np.arange(N), k)
    W = scipy.sparse.csr_matrix(
        (weights.ravel(), (rows, idx.ravel())), shape=(N, N))
    W = (W + W.T) / 2

    return graph_from_adjacency(W)


def patch_features(images, patch_size):
    """
    (rows*cols, patch_size**2 * num_images), one row per pixel in C order
    """
    rows, cols, num_images = images.shape
    r = patch_size // 2
    features = []
    for i in range(num_images):
        padded = np.pad(images[:, :, i], r, mode='reflect')
        patches, _ = extract_grayscale_patches(padded, (patch_size, patch_size))
        features.append(patches.reshape(rows * cols, -1))
    return np.concatenate(features, axis=1)


# Image to patches [Code source :http://jamesgregson.ca/extract-image-patches-in-python.html]
def extract_grayscale_patches(img, shape, offset=(0, 0), stride=(1, 1)):
    """Extracts (typically) overlapping regular patches from a grayscale image

    Args:
        img (HxW ndarray): input image from which to extract patches

        shape (2-element arraylike): shape of that patches as (h,w)

        offset (2-element arraylike): offset of the initial point as (y,x)

        stride (2-element arraylike): vertical and horizontal strides

    Returns:
        patches (ndarray): output image patches as (N,shape[0],shape[1]) array

        origin (2-tuple): array of top and array of left coordinates
    """
    px, py = np.meshgrid(np.arange(shape[1]), np.arange(shape[0]))
    l, t = np.meshgrid(
        np.arange(offset[1], img.shape[1]-shape[1]+1, stride[1]),
        np.arange(offset[0], img.shape[0]-shape[0]+1, stride[0]))
    l = l.ravel()
    t = t.ravel()
    x = np.tile(px[None, :, :], (t.size, 1, 1)) + np.tile(l[:, None, None], (1, shape[0], shape[1]))
    y = np.tile(py[None, :, :], (t.size, 1, 1)) + np.tile(t[:, None, None], (1, shape[0], shape[1]))
    return img[y.ravel(), x.ravel()].reshape((t.size, shape[0], shape[1])), (t, l)


# stationarity ---------------------------------------
def empirical_covariance(X):
    """
    second moment of (already centered) signals, X is (n, num_signals)
    """
    return X @ X.T / X.shape[1]


def fourier_covariance(G, C):
    return G.U.T @ C @ G.U


def stationarity_ratio(G, C):
    """
    fraction of the covariance energy on the diagonal of U.T C U

    1 when C is diagonalized by the graph Fourier basis
    """
    CF = fourier_covariance(G, C)
    return np.linalg.norm(np.diag(CF)) / np.linalg.norm(CF, 'fro')


def experimental_psd(G, C):
    """
    PSD read off the diagonal of the covariance in the Fourier domain
    """
    values = np.diag(fourier_covariance(G, C)).copy()
    e = G.e.copy()

    def psd(x):
        return np.interp(x, e, values)

    return psd


def estimate_psd(G, X, num_filters=50, floor=1e-10):
    """
    smoothed PSD from a few signals

    the power of the signals at each graph frequency is averaged inside
    Gaussian windows evenly spaced on [0, lmax], which gives the PSD at
    the window centers; in between, linear interpolation

    floor is relative to the largest value, the result is strictly positive
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X[:, np.newaxis]

    power = np.mean(G.gft(X)**2, axis=1)

    lmax = max(G.lmax, np.finfo(float).eps)
    centers = np.linspace(0, lmax, num_filters)
    width = lmax / num_filters
    windows = np.exp(-(G.e[np.newaxis, :] - centers[:, np.newaxis])**2
                     / (2 * width**2))**2
    norms = windows.sum(axis=1)
    has_support = norms > 1e-12
    centers = centers[has_support]
    values = (windows[has_support] @ power) / norms[has_support]

    values = np.maximum(values, floor * max(values.max(), np.finfo(float).tiny))

    def psd(x):
        return np.interp(x, centers, values)

    return psd
