"""Cutoff-time scheduling and banking calendar helpers."""