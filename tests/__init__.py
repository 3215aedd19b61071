"""
Test suite for the HOG inversion pipeline.

Checks window extraction, consistency constraints, non-negative sparse
coding and overlap-averaged rendering against the properties of the
paired-dictionary inversion of Vondrick et al. (2013), "HOGgles:
Visualizing Object Detection Features".
"""
