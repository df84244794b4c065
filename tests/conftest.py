import pytest

from aquarelle_sim.brush import FluidEngine, SimulationSettings


@pytest.fixture(scope="session")
def _shared_engine():
    return FluidEngine(arch="cpu")


@pytest.fixture
def engine(_shared_engine):
    """One compiled engine for the whole session, cleared and reset per test."""
    _shared_engine.set_params(SimulationSettings())
    _shared_engine.clear()
    yield _shared_engine
    _shared_engine.clear()


@pytest.fixture
def still_engine(engine):
    """Engine with no diffusion, evaporation or gravity."""
    engine.update_params(diffusion_speed=0.0, evaporation_rate=0.0, gravity_x=0.0, gravity_y=0.0)
    return engine
