import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest


def ring_digits(num, shape=(16, 16), seed=0):
    """
    blurry rings at random places, a stand-in for handwritten digits
    """
    rng = np.random.default_rng(seed)
    rows, cols = shape
    r, c = np.meshgrid(np.arange(rows), np.arange(cols), indexing='ij')
    x = np.zeros((rows * cols, num))
    for i in range(num):
        center_r = rng.uniform(rows / 4, 3 * rows / 4)
        center_c = rng.uniform(cols / 4, 3 * cols / 4)
        radius = rng.uniform(1.5, min(rows, cols) / 3)
        d = np.sqrt((r - center_r)**2 + (c - center_c)**2)
        x[:, i] = np.exp(-(d - radius)**2 / 2).ravel()
    return x


@pytest.fixture
def digits():
    return ring_digits(60)


@pytest.fixture
def small_digits():
    return ring_digits(30, shape=(8, 8), seed=1)
