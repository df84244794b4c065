"""Launches the Aquarelle canvas (same as the `aquarelle` console script)."""
from aquarelle_sim import launch_viewer

if __name__ == "__main__":
    launch_viewer()
