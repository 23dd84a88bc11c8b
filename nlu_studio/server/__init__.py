"""HTTP service exposing NLU training and prediction."""
