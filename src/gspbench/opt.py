"""
recovery estimators and the error metric

every estimator is called as estimator(y, mask, sigma) and returns
the full recovered signal; y is zero where mask is False
"""

import collections
import functools

import cvxpy as cp
import numpy as np


# float64 round-off limits how large a measured SNR can be
SNR_MAX = -20 * np.log10(np.finfo(np.float64).eps)


def snr(x, x_hat):
    """
    10 log10(||x||^2 / ||x - x_hat||^2) in dB, capped at +-SNR_MAX
    """
    x = np.asarray(x, dtype=float).ravel()
    x_hat = np.asarray(x_hat, dtype=float).ravel()
    if x.size == 0:
        return np.nan

    signal = np.sum(x**2)
    error = np.sum((x - x_hat)**2)
    if error == 0:
        return SNR_MAX
    if signal == 0:
        return -SNR_MAX
    return float(np.clip(10 * np.log10(signal / error), -SNR_MAX, SNR_MAX))


# regularizers -------------------------------------
def sum_squares_grad(x, grad, offset=None):
    """
    Tikhonov, ||grad x||_2^2 = x.T L x
    """
    if offset is not None:
        x = x + offset
    return cp.sum_squares(cp.Constant(grad) @ x)


def norm1_grad(x, grad, offset=None):
    """
    graph TV, ||grad x||_1
    """
    if offset is not None:
        x = x + offset
    return cp.norm1(cp.Constant(grad) @ x)


def image_tv(x, shape, offset=None):
    """
    isotropic TV of x seen as an image (C order)
    """
    if offset is not None:
        x = x + offset
    return cp.tv(cp.reshape(x, shape, order='C'))


# solvers ---------------------------------------
class CvxpySolver():
    """
    argmin_x R(x) st || mask * x - y ||_2 <= sqrt(sum(mask)) sigma

    for sigma == 0 the constraint becomes mask * x == y and the observed
    entries of the solution are copied from y

    use this for repeated solves: the two problems (noisy and exact)
    are built on first use and reused by later calls on the same object;
    they are not pickled, so every unpickled copy (one per batch sent to
    a joblib worker) builds its own
    """

    def __init__(self, n, regularizer, **solve_opts):
        self.n = n
        self.regularizer = regularizer
        if not solve_opts:
            solve_opts = {'solver': cp.CLARABEL}
        self.solve_opts = solve_opts
        self._problems = {}

    def __getstate__(self):
        state = self.__dict__.copy()
        state['_problems'] = {}
        return state

    def get_problem(self, exact):
        if exact not in self._problems:
            self._problems[exact] = make_cvxpy_problem(
                self.n, self.regularizer, exact)
        return self._problems[exact]

    def __call__(self, y, mask, sigma):
        mask = np.asarray(mask, dtype=bool)
        exact = sigma == 0
        prob = self.get_problem(exact)
        return solve_cvxpy_problem(prob, y, mask, sigma, **self.solve_opts)


def make_cvxpy_problem(n, regularizer, exact):
    """
    a cvxpy problem representing

    argmin_x R(x) st || mask * x - y ||_2 <= epsilon   (exact=False)
    argmin_x R(x) st mask * x == y                     (exact=True)

    where y, mask (and epsilon) are parameters

    can set this with, e.g.,  prob.y.value
    """
    x = cp.Variable(n, name='x')
    y = cp.Parameter(n, name='y')
    mask = cp.Parameter(n, name='mask', nonneg=True)

    residual = cp.multiply(mask, x) - y
    if exact:
        epsilon = None
        constraints = [residual == 0]
    else:
        epsilon = cp.Parameter(name='epsilon', nonneg=True)
        constraints = [cp.norm(residual, 2) <= epsilon]

    prob = cp.Problem(cp.Minimize(regularizer(x)), constraints)

    prob.x = x
    prob.y = y
    prob.mask = mask
    prob.epsilon = epsilon

    return prob


def solve_cvxpy_problem(prob, y, mask, sigma, **solve_opts):
    y = np.asarray(y, dtype=float)
    prob.y.value = y
    prob.mask.value = mask.astype(float)
    if prob.epsilon is not None:
        prob.epsilon.value = np.sqrt(np.sum(mask)) * sigma

    prob.solve(**solve_opts)
    if prob.x.value is None:
        raise cp.error.SolverError(f'no solution, status: {prob.status}')

    x = np.array(prob.x.value)
    if prob.epsilon is None:
        x[mask] = y[mask]
    return x


def gaussian_map(C, y, mask, noise_var):
    """
    posterior mean of x ~ N(0, C) observed as y = x[mask] + noise

    x = C[:, o] (C[o, o] + noise_var I)^+ y[o]

    least squares takes care of rank deficient C (few training signals)
    """
    obs = np.asarray(mask, dtype=bool)
    x = np.zeros(C.shape[0])
    if not obs.any():
        return x

    C_oo = C[np.ix_(obs, obs)] + noise_var * np.eye(np.sum(obs))
    alpha = np.linalg.lstsq(C_oo, y[obs], rcond=None)[0]
    x = C[:, obs] @ alpha

    if noise_var == 0:
        x[obs] = y[obs]
    return x


class GaussianMAPEstimator():
    """
    Gaussian MAP in-painting with a given covariance
    """

    def __init__(self, C):
        self.C = C

    def __call__(self, y, mask, sigma):
        return gaussian_map(self.C, y, mask, sigma**2)


class WienerEstimator(GaussianMAPEstimator):
    """
    Wiener in-painting for a stationary signal on G: the covariance is
    U diag(psd(e)) U.T
    """

    def __init__(self, G, psd):
        super().__init__((G.U * psd(G.e)) @ G.U.T)


def make_estimators(graph, grid, psd, cov0, mean, image_shape):
    """
    the methods compared in the USPS experiment, in plotting order

    graph, grid - Graph
    psd - PSD function on graph
    cov0 - empirical covariance of the training signals
    mean - the pixel mean removed from the data, the classic
           regularizers act on the uncentered image
    """
    n = graph.N

    estimators = collections.OrderedDict()
    estimators['tik_classic'] = CvxpySolver(
        n, functools.partial(sum_squares_grad, grad=grid.grad, offset=mean))
    estimators['tv_classic'] = CvxpySolver(
        n, functools.partial(image_tv, shape=tuple(image_shape), offset=mean))
    estimators['tik'] = CvxpySolver(
        n, functools.partial(sum_squares_grad, grad=graph.grad))
    estimators['tv'] = CvxpySolver(
        n, functools.partial(norm1_grad, grad=graph.grad))
    estimators['wiener'] = WienerEstimator(graph, psd)
    estimators['grm'] = GaussianMAPEstimator(cov0)

    return estimators
