"""
NUT (Network UPS Tools) power-status source and classification.
"""
