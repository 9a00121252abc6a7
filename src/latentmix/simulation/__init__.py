"""
Synthetic data generation for the latent-class studies.

**Usage:**
```python
from latentmix.simulation import StudySimulator

sim = StudySimulator(random_seed=42)
z, w, y, types = sim.noncompliance_trial(
    500, {"pi_c": 0.8, "eta_c0": 0.9, "eta_c1": 0.95, "eta_n": 0.85}
)
detections, richness = sim.occupancy_survey(60, n_sites=20, n_visits=4, omega=0.5, psi=0.4, p=0.3)
```
"""

from latentmix.simulation.simulator import StudySimulator

__all__ = [
    "StudySimulator",
]
