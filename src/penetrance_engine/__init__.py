"""Empirical-Bayes penetrance estimation for ion-channel variants."""

__version__ = "0.1.0"
