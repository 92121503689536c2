"""Numeric core: precision, fractal formulas, ray marching, shading and landscape."""
