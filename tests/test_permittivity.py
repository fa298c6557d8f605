import numpy as np
import pytest

from Psi import ConfigError, ConstantPermittivity, Field, FieldPermittivity, FunctionPermittivity
from Psi.problems import sinusoidal_permittivity


def test_constant_permittivity(make_decomposition):
    decomposition = make_decomposition()
    model = ConstantPermittivity(2.0)

    assert model.uniform
    assert np.all(model.epsilon_map(decomposition) == 2.0)
    assert model.epsilon(decomposition, decomposition.index(1, 1, 1)) == 2.0

    with pytest.raises(ConfigError):
        ConstantPermittivity(0.0)


def test_function_permittivity_halo_matches_exchange(make_decomposition):
    """Wrapped positions give the same ghost values as a halo exchange."""
    decomposition = make_decomposition(nhalo=2)
    model = FunctionPermittivity(lambda x, y, z: 1.0 + 0.01 * x + 0.1 * y + z)

    expected = model.epsilon_map(decomposition)
    field = Field(decomposition, nf=1)
    field.interior = expected[decomposition.interior_slices()][np.newaxis]
    field.halo()

    assert not model.uniform
    np.testing.assert_allclose(field.data[0], expected)


def test_function_permittivity_site_lookup(make_decomposition):
    decomposition = make_decomposition()
    model = sinusoidal_permittivity(1.5, decomposition.ltot[2], amplitude=0.3)
    values = model.epsilon_map(decomposition).reshape(-1)

    nh = decomposition.nhalo
    for ijk in [(1, 1, 1), (2, 3, 4), (1 - nh, 1, decomposition.nlocal[2] + nh)]:
        index = decomposition.index(*ijk)
        assert model.epsilon(decomposition, index) == pytest.approx(values[index])


def test_sinusoidal_permittivity_bounds(make_decomposition):
    decomposition = make_decomposition()
    values = sinusoidal_permittivity(2.0, decomposition.ltot[2], amplitude=0.5).epsilon_map(decomposition)

    assert values.min() >= 1.0 - 1e-12
    assert values.max() <= 3.0 + 1e-12
    # Depends on z only
    assert np.allclose(values, values[:1, :1, :])

    with pytest.raises(ConfigError):
        sinusoidal_permittivity(2.0, 8.0, amplitude=1.0)


def test_field_permittivity(make_decomposition):
    decomposition = make_decomposition()
    field = Field(decomposition, nf=1, name="epsilon")
    field.interior = 3.0
    model = FieldPermittivity(field)

    values = model.epsilon_map(decomposition)

    # Halo is refreshed before values are used
    assert np.all(values == 3.0)
    assert model.epsilon(decomposition, decomposition.index(0, 0, 0)) == 3.0

    with pytest.raises(ConfigError):
        FieldPermittivity(Field(decomposition, nf=2))
    with pytest.raises(ConfigError):
        model.epsilon_map(make_decomposition())
