"""Personality-aware collaborative filtering.

Two rating models share one user-user similarity layer:
- a user KNN predictor scoring (user, item) pairs from similar users' ratings
- a social-regularized matrix factorization pulling trusted users' factors together

Similarity between two users comes either from their ratings or from a
low-dimensional personality profile loaded from disk.
"""
