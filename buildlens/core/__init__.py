"""Option normalisation, fidelity policy and condition projections."""
