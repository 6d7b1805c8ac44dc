"""
Core modules for ticker logo acquisition.

This package contains the error taxonomy, the shared rate limiter, the
image normalizer and the orchestrating LogoService.
"""
