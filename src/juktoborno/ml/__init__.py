"""Inference pipeline: label mappings, preprocessing, engine, scoring, ranking."""
