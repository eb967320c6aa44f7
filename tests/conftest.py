import numpy as np
import pytest


@pytest.fixture
def random_dna():
    """Returns a factory of reproducible random DNA strings."""
    rng = np.random.default_rng(20240611)
    def _make(n: int) -> str: return ''.join(rng.choice(list('ACGT'), n))
    return _make
