"""Pose streaming for spatial-computing platforms."""
