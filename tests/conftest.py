import numpy as np
import pytest

from cdpr_tda import RobotParameters


@pytest.fixture
def robot8():
    return RobotParameters(n_cables=8, mass=25.0, tau_min=0.0, tau_max=100.0)


@pytest.fixture
def random_case():
    """Generic full-rank 6x8 W and a wrench realizable with tensions in [20, 80]."""
    rng = np.random.default_rng(7)
    W = rng.normal(size=(6, 8))
    tau0 = rng.uniform(20.0, 80.0, size=8)
    return W, W @ tau0, tau0


@pytest.fixture
def x_triplet_W():
    """
    Identity on cables 0..5; cables 6 and 7 also pull along x only.
    Cables 0, 6, 7 share the x row, every other row has a single cable.
    """
    W = np.zeros((6, 8))
    W[:, :6] = np.eye(6)
    W[0, 6] = 1.0
    W[0, 7] = 1.0
    return W
